"""Built-in mapping tables for the Revenue and Expenses sheets.

Line-item keys are the lowercased labels used by the sheet editors. Several
labels intentionally route to the same bucket (reschedule and scope-change
edits all count as additional deliverables).

"project ordered" routes to ``deliverablesApproved``; some revisions of the
sheet configuration routed it to ``other``. Override with a YAML tables file
(see :mod:`src.schema.loader`) if finance confirms the other mapping.
"""

from functools import lru_cache

from .models import ExpenseBucket, MappingTables, RevenueBucket


REVENUE_LINE_ITEMS = {
    "additional deliverables": RevenueBucket.ADDITIONAL_DELIVERABLES.value,
    "additional location":     RevenueBucket.ADDITIONAL_DELIVERABLES.value,
    "creative removed":        RevenueBucket.OTHER.value,
    "deliverables approved":   RevenueBucket.DELIVERABLES_APPROVED.value,
    "extra time on site":      RevenueBucket.ADDITIONAL_DELIVERABLES.value,
    "fewer deliverables":      RevenueBucket.ADDITIONAL_DELIVERABLES.value,
    "file":                    RevenueBucket.OTHER.value,
    "last minute reschedule":  RevenueBucket.LAST_MINUTE_RESCHEDULE.value,
    "other":                   RevenueBucket.OTHER.value,
    "project cancelled":       RevenueBucket.OTHER.value,
    "project ordered":         RevenueBucket.DELIVERABLES_APPROVED.value,
    "travel":                  RevenueBucket.TRAVEL.value,
}

EXPENSE_LINE_ITEMS = {
    "base amount":             ExpenseBucket.BASE.value,
    "additional deliverables": ExpenseBucket.ADDITIONAL_DELIVERABLES.value,
    "last minute reschedule":  ExpenseBucket.LAST_MINUTE_RESCHEDULE.value,
    "travel":                  ExpenseBucket.TRAVEL.value,
    # Literal backslash-n left in the sheet's data-validation list
    "\\n":                     ExpenseBucket.LAST_MINUTE_RESCHEDULE.value,
    "other":                   ExpenseBucket.OTHER.value,
    "additional location":     ExpenseBucket.ADDITIONAL_DELIVERABLES.value,
    "extra time on site":      ExpenseBucket.ADDITIONAL_DELIVERABLES.value,
    "fewer deliverables":      ExpenseBucket.ADDITIONAL_DELIVERABLES.value,
}

COUNTRY_ALIASES = {
    "us": "USA", "usa": "USA", "united states": "USA",
    "au": "Australia", "australia": "Australia",
    "uk": "UK", "gb": "UK", "united kingdom": "UK",
    "ca": "Canada", "canada": "Canada",
    "nz": "New Zealand", "new zealand": "New Zealand",
    "de": "Germany", "germany": "Germany",
    "fr": "France", "france": "France",
    "sg": "Singapore", "singapore": "Singapore",
    "ie": "Ireland", "ireland": "Ireland",
}

PARTNER_ALIASES = {
    "grubhub": "GrubHub",
    "grub hub": "GrubHub",
    "uber eats": "Uber Eats",
    "ubereats": "Uber Eats",
    "uber eats anz": "Uber Eats ANZ",
    "ubereats anz": "Uber Eats ANZ",
    "deliveroo": "Deliveroo",
}

# Partners shown individually in partner charts; everyone else is "Other"
NAMED_PARTNERS = ("Uber Eats", "Uber Eats ANZ", "Deliveroo", "GrubHub")


@lru_cache(maxsize=None)
def build_default_tables() -> MappingTables:
    """Return the built-in mapping tables (a shared, read-only instance)."""
    return MappingTables(
        revenue_line_items=REVENUE_LINE_ITEMS,
        expense_line_items=EXPENSE_LINE_ITEMS,
        country_aliases=COUNTRY_ALIASES,
        partner_aliases=PARTNER_ALIASES,
        named_partners=NAMED_PARTNERS,
    )

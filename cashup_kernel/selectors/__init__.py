"""Read-only selectors."""

from cashup_kernel.selectors.guide_selector import AccountView, GuideSelector, GuideView
from cashup_kernel.selectors.period_selector import PeriodSelector
from cashup_kernel.selectors.trip_selector import RosterDefect, TripSelector, TripView

__all__ = [
    "AccountView",
    "GuideSelector",
    "GuideView",
    "PeriodSelector",
    "RosterDefect",
    "TripSelector",
    "TripView",
]

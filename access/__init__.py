"""
Calendar delegation: grants, delegated views and grant-target search.
"""
from .views import DelegatedView
from .registry import AccessGrantRegistry
from .search import filter_grant_targets

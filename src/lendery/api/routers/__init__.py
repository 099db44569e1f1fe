# ABOUTME: Route modules for the lendery HTTP surface.
# ABOUTME: One APIRouter per resource: books, search, loans, borrow requests, ai helpers.

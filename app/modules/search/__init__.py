from app.modules.search.fetcher import FetchError, SiteFetcher
from app.modules.search.serper import SearchError, SerperClient

__all__ = ["FetchError", "SearchError", "SerperClient", "SiteFetcher"]

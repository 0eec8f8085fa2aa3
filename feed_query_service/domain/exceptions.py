"""
Domain exceptions raised by the combined search/filter pipeline
"""


class FeedQueryError(Exception):
    """Base error carrying an HTTP status and a machine readable code"""

    status = 500
    code = "feed_query_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SearchUnavailable(FeedQueryError):
    """Search provider failed or timed out"""

    status = 503
    code = "search_unavailable"


class FilterUnavailable(FeedQueryError):
    """Data source for filtering failed or timed out"""

    status = 503
    code = "filter_unavailable"


class InvalidFilterValue(FeedQueryError):
    """A facet value outside its recognized set"""

    status = 400
    code = "invalid_filter_value"

    def __init__(self, facet: str, value):
        super().__init__(f"Unrecognized value {value!r} for filter '{facet}'")
        self.facet = facet
        self.value = value

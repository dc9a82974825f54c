"""Error kinds raised by the data access layer and the document store"""


class BlogStoreError(Exception):
    """Base class for blogstore errors.

    ``code`` carries the discriminating string callers match on.
    """

    code: str = "blogstore/error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)


class UserNotFound(BlogStoreError):
    """Lookup by ID or by name matched no user"""

    code = "user/not-found"


class PostNotFound(BlogStoreError):
    """Lookup by ID, or by author and slug, matched no post"""

    code = "post/not-found"


class DocumentNotFound(BlogStoreError):
    """An update targeted a document that does not exist"""

    code = "store/not-found"

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"No document '{doc_id}' in collection '{collection}'")

import hashlib

DEFAULT_HASH_ALGORITHM = "sha1"


def hash_text(text: str, algorithm: str = DEFAULT_HASH_ALGORITHM) -> str:
    """
    Hash UTF-8 text and return a string in the format `algorithm:hash`. Used as the
    freshness token for optimistic concurrency checks on document content.
    """
    if algorithm not in hashlib.algorithms_available:
        raise ValueError(f"Unsupported hash algorithm: {algorithm}")
    hasher = hashlib.new(algorithm)
    hasher.update(text.encode("utf-8"))
    return f"{algorithm}:{hasher.hexdigest()}"


## Tests


def test_hash_text():
    assert hash_text("Hello, World!") == "sha1:0a0a9f2a6772942557ab5355d76af442f8f65e01"
    assert hash_text("Hello, World!", "sha256").startswith("sha256:")
    assert hash_text("a") != hash_text("a\n")

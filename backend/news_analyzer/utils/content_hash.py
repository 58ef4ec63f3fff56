import hashlib
from typing import Union


def generate_content_hash(content: Union[str, bytes]) -> str:
    """
    Generate SHA-256 hash of content

    Args:
        content: Text or bytes to hash

    Returns:
        Hexadecimal hash string
    """
    if isinstance(content, str):
        content = content.encode('utf-8')

    return hashlib.sha256(content).hexdigest()


def stable_article_id(source_type: str, url: str) -> str:
    """
    Derive a stable article id from its source type and link

    Re-importing the same feed entry yields the same id, so imports upsert
    instead of duplicating.
    """
    normalized = url.strip()
    return f"{source_type}-{generate_content_hash(normalized)[:24]}"

"""Test doubles for external collaborators."""

from typing import List, Tuple


class FakeBlobStore:
    """Records uploads and hands back a predictable public URL."""

    def __init__(self, base_url: str = "https://blob.test"):
        self.base_url = base_url
        self.uploads: List[Tuple[str, bytes, str]] = []

    async def upload_bytes(self, path: str, content: bytes, content_type: str) -> str:
        self.uploads.append((path, content, content_type))
        return f"{self.base_url}/{path}"

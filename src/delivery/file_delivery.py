"""
File publisher, used for dry runs
"""
import asyncio
import json
from dataclasses import asdict
from pathlib import Path

from core.entities import Post, PostReference
from core.errors import PublishError
from delivery.base import Publisher


class FilePublisher(Publisher):
    name = "file"

    def __init__(self, output_dir: str = "output"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.path = self.output_dir / "posts.jsonl"
        self._lock = asyncio.Lock()

    async def publish(self, post: Post) -> PostReference:
        record = asdict(post)
        record["created_at"] = post.created_at.isoformat()

        async with self._lock:
            try:
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(json.dumps(record) + "\n")
                    offset = f.tell()
            except OSError as e:
                raise PublishError(f"Unable to write post to {self.path}: {e}", post.text) from e

        return PostReference(uri=f"{self.path.resolve().as_uri()}#{offset}")

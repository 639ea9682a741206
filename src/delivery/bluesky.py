"""
Bluesky publisher built on the atproto SDK.
The login session is cached on disk so restarts reuse it instead of
creating a new session every time.
"""
import asyncio
import io
import logging
from pathlib import Path
from typing import List, Optional

import httpx
from atproto import AsyncClient, models
from PIL import Image

from core.entities import Post, PostEmbed, PostReference
from core.errors import PublishError
from delivery.base import Publisher
from processing.text import find_links

logger = logging.getLogger(__name__)

SESSION_FILE = "session.txt"
THUMBNAIL_SIZE = (960, 540)


def _xrpc_url(service: str) -> str:
    service = service.rstrip("/")
    return service if service.endswith("/xrpc") else f"{service}/xrpc"


def make_facets(text: str) -> List[models.AppBskyRichtextFacet.Main]:
    return [
        models.AppBskyRichtextFacet.Main(
            features=[models.AppBskyRichtextFacet.Link(uri=url)],
            index=models.AppBskyRichtextFacet.ByteSlice(byte_start=start, byte_end=end),
        )
        for start, end, url in find_links(text)
    ]


def downscale_image(data: bytes) -> bytes:
    """Shrink a cover image to fit 960x540 and re-encode it as WebP."""
    with Image.open(io.BytesIO(data)) as img:
        img.thumbnail(THUMBNAIL_SIZE)
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
        buf = io.BytesIO()
        img.save(buf, format="WEBP")
        return buf.getvalue()


class BlueskyPublisher(Publisher):
    name = "bluesky"

    def __init__(
        self,
        client: AsyncClient,
        data_path: str,
        disable_comments: bool = True,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.client = client
        self.session_path = Path(data_path) / SESSION_FILE
        self.disable_comments = disable_comments
        self.http_client = http_client
        self._session_lock = asyncio.Lock()

    @classmethod
    async def create(
        cls,
        service: str,
        data_path: str,
        identifier: str,
        password: str,
        disable_comments: bool = True,
    ) -> "BlueskyPublisher":
        publisher = cls(AsyncClient(base_url=_xrpc_url(service)), data_path, disable_comments)
        await publisher.login(identifier, password)
        return publisher

    async def login(self, identifier: str, password: str) -> None:
        """Resume the cached session when possible, otherwise log in with the app password."""
        if self.session_path.exists():
            try:
                await self.client.login(session_string=self.session_path.read_text(encoding="utf-8").strip())
                logger.info("Resumed cached Bluesky session")
                await self.sync()
                return
            except Exception as e:
                logger.warning(f"Cached Bluesky session is unusable, creating a new one: {e}")

        try:
            await self.client.login(login=identifier, password=password)
        except Exception as e:
            raise PublishError(f"Bluesky login failed for {identifier}: {e}") from e
        logger.info(f"Logged in to Bluesky as {identifier}")
        await self.sync()

    async def sync(self) -> None:
        logger.debug("Syncing Bluesky session data")
        async with self._session_lock:
            session = self.client.export_session_string()
            self.session_path.parent.mkdir(parents=True, exist_ok=True)
            self.session_path.write_text(session, encoding="utf-8")

    async def _download(self, url: str) -> bytes:
        if self.http_client is not None:
            resp = await self.http_client.get(url, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=30) as client:
                resp = await client.get(url, follow_redirects=True)
        resp.raise_for_status()
        return resp.content

    async def _upload_thumbnail(self, url: str):
        logger.debug(f"Fetching and uploading thumbnail {url}", extra={"url": url})
        try:
            image = await asyncio.to_thread(downscale_image, await self._download(url))
            upload = await self.client.upload_blob(image)
            return upload.blob
        except Exception as e:
            logger.warning(f"Unable to attach thumbnail {url}: {e}", extra={"url": url})
            return None

    async def _embed_external(self, embed: PostEmbed) -> models.AppBskyEmbedExternal.Main:
        logger.info(f"Constructing external embed data for '{embed.uri}'", extra={"url": embed.uri})
        thumb = await self._upload_thumbnail(embed.thumbnail_url) if embed.thumbnail_url else None
        return models.AppBskyEmbedExternal.Main(
            external=models.AppBskyEmbedExternal.External(
                title=embed.title,
                description=embed.description,
                uri=embed.uri,
                thumb=thumb,
            )
        )

    async def _disable_replies(self, post_uri: str) -> None:
        logger.info(f"Disabling post comments via threadgate for '{post_uri}'")
        rkey = post_uri.rsplit("/", 1)[-1]
        await self.client.app.bsky.feed.threadgate.create(
            self.client.me.did,
            models.AppBskyFeedThreadgate.Record(
                post=post_uri,
                allow=[],
                created_at=self.client.get_current_time_iso(),
            ),
            rkey=rkey,
        )

    async def publish(self, post: Post) -> PostReference:
        logger.info(f"Creating post record for '{post.text}'")
        try:
            embed = await self._embed_external(post.embed) if post.embed else None
            record = models.AppBskyFeedPost.Record(
                text=post.text,
                created_at=post.created_at.isoformat(),
                facets=make_facets(post.text) or None,
                langs=post.languages or None,
                embed=embed,
            )
            response = await self.client.app.bsky.feed.post.create(self.client.me.did, record)
        except Exception as e:
            raise PublishError(f"Bluesky publish failed: {e}", post.text) from e

        # The post exists from here on, threadgate failures only warn
        if self.disable_comments:
            try:
                await self._disable_replies(response.uri)
            except Exception as e:
                logger.warning(
                    f"Published {response.uri} but failed to disable its comments: {e}",
                    extra={"url": post.embed.uri if post.embed else None},
                )

        return PostReference(uri=response.uri, cid=response.cid)

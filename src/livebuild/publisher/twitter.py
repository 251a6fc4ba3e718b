# src/livebuild/publisher/twitter.py
"""
Publishers for the X/Twitter API.

TwitterPublisher talks to the real API through tweepy (v2 for posting, v1.1
for media upload). tweepy is blocking, so every call is pushed onto a worker
thread to keep the event loop free.

DryRunPublisher never touches the network; it logs the post and returns a
synthetic `dry-run-<epoch ms>` id.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

import tweepy

from livebuild.managers.base import PublishedPost

logger = logging.getLogger(__name__)

DRY_RUN_PREFIX = "dry-run-"


class DryRunPublisher:
    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    async def publish(
        self,
        text: str,
        *,
        reply_to: Optional[str] = None,
        media_path: Optional[str] = None,
    ) -> PublishedPost:
        fake_id = f"{DRY_RUN_PREFIX}{int(self._clock() * 1000)}"
        logger.info(
            "twitter: dry run tweet id=%s reply_to=%s media=%s text=%r",
            fake_id,
            reply_to,
            media_path,
            text,
        )
        return PublishedPost(id=fake_id, text=text, dry_run=True)


class TwitterPublisher:
    def __init__(
        self,
        *,
        api_key: str,
        api_secret: str,
        access_token: str,
        access_secret: str,
        client: Optional[tweepy.Client] = None,
        media_api: Optional[tweepy.API] = None,
    ) -> None:
        self.client = client or tweepy.Client(
            consumer_key=api_key,
            consumer_secret=api_secret,
            access_token=access_token,
            access_token_secret=access_secret,
        )
        if media_api is None:
            auth = tweepy.OAuth1UserHandler(api_key, api_secret, access_token, access_secret)
            media_api = tweepy.API(auth)
        self.media_api = media_api

    def _upload_media(self, media_path: str) -> str:
        media = self.media_api.media_upload(filename=media_path)
        media_id = str(media.media_id)
        logger.info("twitter: media uploaded id=%s path=%s", media_id, media_path)
        return media_id

    def _post(self, text: str, reply_to: Optional[str], media_path: Optional[str]) -> PublishedPost:
        kwargs = {"text": text}
        if media_path:
            kwargs["media_ids"] = [self._upload_media(media_path)]
        if reply_to:
            kwargs["in_reply_to_tweet_id"] = reply_to

        response = self.client.create_tweet(**kwargs)
        data = response.data or {}
        tweet_id = str(data["id"])
        logger.info("twitter: tweet posted id=%s reply_to=%s", tweet_id, reply_to)
        return PublishedPost(id=tweet_id, text=data.get("text", text))

    async def publish(
        self,
        text: str,
        *,
        reply_to: Optional[str] = None,
        media_path: Optional[str] = None,
    ) -> PublishedPost:
        try:
            return await asyncio.to_thread(self._post, text, reply_to, media_path)
        except Exception as exc:
            logger.error("twitter: failed to post tweet: %s", exc)
            raise


__all__ = ["DRY_RUN_PREFIX", "DryRunPublisher", "TwitterPublisher"]

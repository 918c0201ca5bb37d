"""Proof-of-work challenge solver.

Fetches a challenge from the backend's verification endpoint through the
session's proxy (or directly), brute-forces the number whose salted SHA-256
matches the challenge digest, and packs the result into a connection token.

Fetches through the same proxy are spaced by ``ProxyPool.throttle``. The
search runs in a worker thread so a large ``maxnumber`` does not stall other
sessions on the event loop.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time

import httpx
from pydantic import ValidationError as PydanticValidationError

from wsrelay.middleware.error_handler import (
    ChallengeTransportError,
    InvalidChallengeError,
    UnsolvedChallengeError,
)
from wsrelay.models.challenge import Challenge, TokenPayload, encode_token
from wsrelay.proxy.pool import ProxyPool
from wsrelay.proxy.types import ProxyEndpoint

logger = logging.getLogger(__name__)


def solve_challenge(challenge: Challenge) -> int | None:
    """Return the first ``i`` in ``[0, maxnumber]`` with ``sha256(salt + str(i)) == challenge``.

    Candidates are tried in ascending order; ``None`` if none matches.
    """
    target = challenge.challenge.lower()
    salted = hashlib.sha256(challenge.salt.encode("utf-8"))

    for number in range(challenge.maxnumber + 1):
        digest = salted.copy()
        digest.update(str(number).encode("ascii"))
        if digest.hexdigest() == target:
            return number
    return None


class ChallengeSolver:
    """Produces connection tokens for the backend.

    Parameters
    ----------
    proxy_pool:
        Pool consulted for per-proxy fetch spacing.
    verify_url:
        Verification endpoint (e.g. "https://api.moomoo.io/verify").
    headers:
        Browser-like headers sent with every fetch.
    timeout_seconds:
        Overall bound on the verification request.
    token_tag:
        Value of the ``took`` field in the token envelope.
    """

    def __init__(
        self,
        *,
        proxy_pool: ProxyPool,
        verify_url: str,
        headers: dict[str, str] | None = None,
        timeout_seconds: float = 15.0,
        token_tag: str = "cloud-proxy",
    ) -> None:
        self._proxy_pool = proxy_pool
        self._verify_url = verify_url
        self._headers = dict(headers or {})
        self._timeout_seconds = timeout_seconds
        self._token_tag = token_tag

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def solve(
        self,
        endpoint: ProxyEndpoint | None,
        headers: dict[str, str] | None = None,
    ) -> str:
        """Fetch and solve a challenge, returning the encoded token.

        Raises
        ------
        ChallengeTransportError
            Request timed out, failed to connect, or returned a non-2xx status.
        InvalidChallengeError
            Response is not JSON or lacks challenge, salt or maxnumber.
        UnsolvedChallengeError
            No number in range matches the challenge digest.
        """
        wait = await self._proxy_pool.throttle(endpoint)
        if wait > 0:
            logger.debug("Waiting %.3fs before challenge fetch", wait)
            await asyncio.sleep(wait)

        body = await self._fetch(endpoint, {**self._headers, **(headers or {})})
        challenge = self._parse(body)

        logger.info("Solving challenge, max: %d", challenge.maxnumber)
        started = time.monotonic()
        number = await asyncio.to_thread(solve_challenge, challenge)
        duration_ms = (time.monotonic() - started) * 1000

        if number is None:
            logger.error(
                "Failed to solve challenge (maxnumber=%d)",
                challenge.maxnumber,
                extra={"duration_ms": round(duration_ms, 1)},
            )
            raise UnsolvedChallengeError(
                f"No solution in range 0..{challenge.maxnumber}"
            )

        logger.info(
            "Challenge solved at: %d",
            number,
            extra={"duration_ms": round(duration_ms, 1)},
        )
        return encode_token(
            TokenPayload(
                challenge=challenge.challenge,
                salt=challenge.salt,
                number=number,
                signature=challenge.signature,
                took=self._token_tag,
            )
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _fetch(
        self, endpoint: ProxyEndpoint | None, headers: dict[str, str]
    ) -> object:
        """GET the verification endpoint and return the decoded JSON body."""
        proxy_host = endpoint.display_host if endpoint else "direct"

        try:
            async with httpx.AsyncClient(
                proxy=endpoint.url if endpoint else None,
                timeout=httpx.Timeout(self._timeout_seconds),
                trust_env=False,
            ) as client:
                response = await client.get(self._verify_url, headers=headers)
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.error("Challenge request timeout via %s", proxy_host)
            raise ChallengeTransportError(
                f"Challenge request timed out after {self._timeout_seconds}s",
                proxy=proxy_host,
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            # ValueError: proxy scheme httpx cannot tunnel through
            logger.error("Challenge request error via %s: %s", proxy_host, exc)
            raise ChallengeTransportError(
                f"Challenge request failed: {exc}",
                proxy=proxy_host,
            ) from exc

        try:
            return response.json()
        except ValueError as exc:
            logger.error("Challenge response parse error: %s", exc)
            raise InvalidChallengeError("Challenge response is not valid JSON") from exc

    @staticmethod
    def _parse(body: object) -> Challenge:
        """Validate the response body; no hashing happens before this succeeds."""
        if not isinstance(body, dict):
            logger.error("Invalid challenge data: expected a JSON object")
            raise InvalidChallengeError("Challenge response is not a JSON object")

        try:
            return Challenge.model_validate(body)
        except PydanticValidationError as exc:
            missing = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
            logger.error("Invalid challenge data (fields: %s)", ", ".join(missing))
            raise InvalidChallengeError(
                "Invalid challenge data",
                fields=missing,
            ) from exc

"""
Cached zh -> en translation for free-form course text.

Descriptions, category names, notes and titles the transliterator cannot
handle go through ``translate_batch``: unique texts are looked up in the
``translations`` table, the misses are sent to the LLM in one batch call, and
successful results are written back. Translation is best effort; when the
remote call fails the source text stands in for its translation.
"""

from __future__ import annotations

import json
import logging
import os
import re
import sqlite3
import time
from typing import Any, Iterable, Sequence

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed
from tenacity.nap import sleep as _retry_sleep

from config import (
    OPENROUTER_API_KEY_ENV,
    OPENROUTER_BASE_URL,
    SOURCE_LANG,
    TARGET_LANG,
    TRANSLATION_MAX_ATTEMPTS,
    TRANSLATION_MODEL,
    TRANSLATION_RETRY_BACKOFF_S,
    TRANSLATION_TEMPERATURE,
    TRANSLATION_TIMEOUT_S,
)
from migrations.migrate import DB_PATH
from utils.metrics import record_operation

LOGGER = logging.getLogger("courselog.translation")

SYSTEM_PROMPT = (
    "You translate short Chinese course texts (topic descriptions, category names, "
    "notes and titles) into concise English. Reply with a JSON array of strings only."
)

TRANSLATE_PROMPT = (
    "Translate these Chinese items to English for a university course ({context}). "
    "These are topic descriptions and category names. "
    "Return ONLY a JSON array of strings, with exactly {count} elements, in the same order:\n{numbered}"
)


class TranslationResponseError(ValueError):
    """Raised when the remote reply is not a JSON array of strings."""


def _connect() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def _read_cached(conn: sqlite3.Connection, text: str) -> str | None:
    row = conn.execute(
        """
        SELECT translated_text FROM translations
        WHERE source_text=? AND source_lang=? AND target_lang=?
        """,
        (text, SOURCE_LANG, TARGET_LANG),
    ).fetchone()
    return None if row is None else str(row[0])


def _read_cached_many(texts: Sequence[str]) -> list[str | None]:
    # A storage error reads as a miss; it is logged so outages stay visible.
    try:
        conn = _connect()
    except sqlite3.Error as e:
        LOGGER.warning("translation cache unavailable: %s", e)
        return [None] * len(texts)
    out: list[str | None] = []
    try:
        for text in texts:
            try:
                out.append(_read_cached(conn, text))
            except sqlite3.Error as e:
                LOGGER.warning("translation cache read failed for %r: %s", text[:60], e)
                out.append(None)
    finally:
        conn.close()
    return out


def lookup_cached_translations(texts: Sequence[str]) -> list[str | None]:
    """
    Cached English text for each input, or None where nothing is cached.

    Args:
        texts: Source (Chinese) strings.

    Returns:
        List of the same length and order as *texts*.
    """
    if not texts:
        return []
    return _read_cached_many(list(texts))


def cached_translation_map(texts: Iterable[str]) -> dict[str, str]:
    """Map of source text -> cached translation for the non-empty *texts* that have one."""
    unique = list(dict.fromkeys(t for t in texts if t))
    cached = lookup_cached_translations(unique)
    return {text: hit for text, hit in zip(unique, cached) if hit is not None}


def store_translations(pairs: Iterable[tuple[str, str]]) -> int:
    """
    Upsert (source, translation) pairs into the cache.

    Blank sources or translations are skipped. Write errors are logged and
    skipped. Returns the number of rows written.
    """
    written = 0
    try:
        conn = _connect()
    except sqlite3.Error as e:
        LOGGER.warning("translation cache unavailable for writes: %s", e)
        return 0
    try:
        for source, translated in pairs:
            if not source or not str(translated or "").strip():
                continue
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO translations(source_text, translated_text, source_lang, target_lang)
                        VALUES (?, ?, ?, ?)
                        ON CONFLICT(source_text, source_lang, target_lang)
                        DO UPDATE SET translated_text=excluded.translated_text
                        """,
                        (source, translated, SOURCE_LANG, TARGET_LANG),
                    )
                written += 1
            except sqlite3.Error as e:
                LOGGER.warning("translation cache write failed for %r: %s", source[:60], e)
    finally:
        conn.close()
    return written


def _extract_json_array(raw: str) -> list[Any]:
    """Parse a JSON array from *raw*, tolerating ``` fences and surrounding prose."""
    text = (raw or "").strip()
    if not text:
        return []
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```\s*$", "", text).strip()
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        match = re.search(r"\[[\s\S]*\]", text)
        if not match:
            return []
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError:
            return []
    return parsed if isinstance(parsed, list) else []


def _build_prompt(texts: Sequence[str], context: str) -> str:
    numbered = "\n".join(f"{i}. {t}" for i, t in enumerate(texts, start=1))
    return TRANSLATE_PROMPT.format(context=context, count=len(texts), numbered=numbered)


def _call_remote_translate(texts: Sequence[str], context: str, api_key: str) -> list[str]:
    """
    One batch request to the chat-completions endpoint.

    The client does not retry on its own; ``_translate_misses`` owns retries
    and backoff.

    Raises:
        TranslationResponseError: If the reply is not a JSON array of strings.
        Exception: Any transport or API error from the client.
    """
    llm = ChatOpenAI(
        model=TRANSLATION_MODEL,
        api_key=api_key,
        base_url=OPENROUTER_BASE_URL,
        temperature=TRANSLATION_TEMPERATURE,
        max_retries=0,
        timeout=TRANSLATION_TIMEOUT_S,
    )
    messages = [
        SystemMessage(content=SYSTEM_PROMPT),
        HumanMessage(content=_build_prompt(texts, context)),
    ]
    response = llm.invoke(messages)
    content = response.content if isinstance(response.content, str) else ""
    items = _extract_json_array(content)
    if not items and texts:
        raise TranslationResponseError("No JSON array in translation response")
    if not all(isinstance(item, str) for item in items):
        raise TranslationResponseError("Translation response contains non-string items")
    return items


def _resolve_api_key(api_key: str | None) -> str:
    return (api_key or os.environ.get(OPENROUTER_API_KEY_ENV) or "").strip()


def _translate_misses(misses: list[str], context: str, api_key: str) -> list[str] | None:
    """Remote call with retries; None once every attempt has failed."""

    def log_failure(retry_state: RetryCallState) -> None:
        LOGGER.warning(
            "translation attempt %s/%s failed (%s texts): %s",
            retry_state.attempt_number,
            TRANSLATION_MAX_ATTEMPTS,
            len(misses),
            retry_state.outcome.exception() if retry_state.outcome else None,
        )

    def give_up(retry_state: RetryCallState) -> None:
        log_failure(retry_state)
        return None

    retrying = Retrying(
        stop=stop_after_attempt(TRANSLATION_MAX_ATTEMPTS),
        wait=wait_fixed(TRANSLATION_RETRY_BACKOFF_S),
        retry=retry_if_exception_type(Exception),
        before_sleep=log_failure,
        retry_error_callback=give_up,
        sleep=_retry_sleep,
    )
    return retrying(_call_remote_translate, misses, context, api_key)


def translate_batch(texts: Sequence[str], context: str = "", api_key: str | None = None) -> list[str]:
    """
    Translate *texts* to English through the cache, calling the LLM once for all misses.

    Duplicates collapse to a single lookup and a single remote entry. The
    remote call is retried up to ``TRANSLATION_MAX_ATTEMPTS`` times; if it
    never succeeds, or returns the wrong number of items, every miss maps to
    its own source text and nothing is cached for it.

    Args:
        texts: Source strings; empty strings pass through as "".
        context: Short course description for the prompt, e.g. "CS61A Structure".
        api_key: OpenRouter key; defaults to the ``OPENROUTER_API_KEY`` env var.

    Returns:
        Translations in the same length and order as *texts*. Never raises.
    """
    if not texts:
        return []
    started = time.perf_counter()

    unique = list(dict.fromkeys(t for t in texts if t))
    cache_map: dict[str, str] = {}
    misses: list[str] = []
    for text, hit in zip(unique, _read_cached_many(unique)):
        if hit is None:
            misses.append(text)
        else:
            cache_map[text] = hit

    remote_ok = not misses
    if misses:
        key = _resolve_api_key(api_key)
        translations: list[str] | None = None
        if key:
            translations = _translate_misses(misses, context, key)
        else:
            LOGGER.warning("%s is not set; leaving %s texts untranslated", OPENROUTER_API_KEY_ENV, len(misses))

        if translations is not None and len(translations) != len(misses):
            LOGGER.warning(
                "translation count mismatch: sent %s, got %s; using source text",
                len(misses),
                len(translations),
            )
            translations = None

        if translations is None:
            if key:
                LOGGER.warning("translation degraded: %s texts left as source text", len(misses))
            for source in misses:
                cache_map[source] = source
        else:
            remote_ok = True
            fresh: list[tuple[str, str]] = []
            for source, translated in zip(misses, translations):
                if translated.strip():
                    fresh.append((source, translated))
                    cache_map[source] = translated
                else:
                    cache_map[source] = source
            store_translations(fresh)

    LOGGER.info(
        "translate_batch: %s texts, %s unique, %s cached, %s missed, remote_ok=%s",
        len(texts),
        len(unique),
        len(unique) - len(misses),
        len(misses),
        remote_ok,
    )
    record_operation(
        "translate_batch",
        time.perf_counter() - started,
        context=context,
        unique=len(unique),
        misses=len(misses),
        remote_ok=remote_ok,
    )
    return ["" if not t else cache_map.get(t, t) for t in texts]

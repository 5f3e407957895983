"""Translate domain exceptions into HTTP errors at the route boundary."""

from fastapi import HTTPException

from promptverse.core.exceptions import PromptVerseError, error_detail


def http_error(exc: PromptVerseError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=error_detail(exc))

"""
Translation of service errors into HTTP responses.
"""
import logging
from contextlib import contextmanager

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError

from ..errors import NegotiationError, StorageUnavailableError

logger = logging.getLogger(__name__)


@contextmanager
def http_errors():
    """
    NegotiationError -> its own status code with a structured detail.
    Unexpected storage errors -> 503; the client must re-read before retrying.
    """
    try:
        yield
    except NegotiationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except SQLAlchemyError:
        logger.exception("Storage error while handling request")
        error = StorageUnavailableError()
        raise HTTPException(status_code=error.status_code, detail=error.to_dict())

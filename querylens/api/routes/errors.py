from contextlib import contextmanager

from fastapi import HTTPException

from querylens.core.errors import NotFoundError, TransportError


@contextmanager
def translate_errors():
    """Map domain errors onto HTTP status codes."""
    try:
        yield
    except HTTPException:
        raise
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TransportError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

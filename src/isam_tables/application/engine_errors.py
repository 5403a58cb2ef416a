"""Translation of storage engine signals into the public error taxonomy."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from isam_tables.domain.exceptions import (
    AlreadyExistsError,
    DuplicateKeyError,
    EngineError,
    InvalidStateError,
    NotFoundError,
    SchemaError,
)
from isam_tables.ports.outbound.storage_engine import (
    EngineColumnExistsError,
    EngineDatabaseExistsError,
    EngineDatabaseNotFoundError,
    EngineFailure,
    EngineKeyExistsError,
    EngineKeyNotFoundError,
    EngineTableExistsError,
    EngineTableNotFoundError,
    EngineTransactionError,
)


@contextmanager
def engine_errors() -> Iterator[None]:
    """Re-raise engine failures inside the block as access layer errors.

    The engine exception is chained as ``__cause__``.
    """
    try:
        yield
    except EngineKeyExistsError as e:
        raise DuplicateKeyError(str(e), key=e.key) from e
    except (EngineKeyNotFoundError, EngineTableNotFoundError, EngineDatabaseNotFoundError) as e:
        raise NotFoundError(str(e)) from e
    except (EngineTableExistsError, EngineColumnExistsError) as e:
        raise SchemaError(str(e)) from e
    except EngineDatabaseExistsError as e:
        raise AlreadyExistsError(str(e)) from e
    except EngineTransactionError as e:
        raise InvalidStateError(str(e)) from e
    except EngineFailure as e:
        raise EngineError(str(e)) from e

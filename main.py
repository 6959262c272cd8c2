import logging
import sqlite3
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from config import Settings, get_settings
from db_models import AddContactRequest, FinalResponse, IdentifyRequest
from errors import EmptyRequestError, IntegrityError, StorageUnavailable
from logging_config import setup_logging
from reconciliation import identify as reconcile
from repository import ContactStore

setup_logging(get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Contact Identity Reconciliation API",
    version="1.0.0"
)


@lru_cache(maxsize=1)
def get_store() -> ContactStore:
    settings = get_settings()
    store = ContactStore(settings.database_path, timeout=settings.busy_timeout)
    store.init()
    return store


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.error("Contact graph integrity failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.exception_handler(StorageUnavailable)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
    logger.warning("Contact store unavailable on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"error": "Contact store unavailable, retry later"})


@app.exception_handler(EmptyRequestError)
async def empty_request_handler(request: Request, exc: EmptyRequestError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.get("/")
async def root():
    return {
        "message": "Identity reconciliation API is up",
        "endpoint": "POST /identify",
        "example": {"email": "test@example.com", "phoneNumber": "1234567890"},
    }


@app.get("/health")
def health(store: ContactStore = Depends(get_store)):
    try:
        store.ping()
    except StorageUnavailable:
        return JSONResponse(status_code=503, content={"status": "unhealthy"})
    return {"status": "healthy"}


@app.post("/identify", response_model=FinalResponse)
def identify(
    request: IdentifyRequest,
    store: ContactStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    logger.info("Identify request email=%r phoneNumber=%r", request.email, request.phoneNumber)

    with store.transaction() as repo:
        contact = reconcile(
            repo,
            request.email,
            request.phoneNumber,
            allow_empty=settings.allow_empty_identify,
        )

    return FinalResponse(contact=contact)


@app.post("/add-contact")
def add_contact(request: AddContactRequest, store: ContactStore = Depends(get_store)):
    """Add a raw contact row with all fields (backfills and fixtures)."""
    try:
        with store.transaction() as repo:
            contact_id = repo.insert(
                email=request.email,
                phone=request.phoneNumber,
                linked_id=request.linkedId,
                precedence=request.linkPrecedence,
                contact_id=request.id,
                created_at=request.createdAt,
            )
    except sqlite3.IntegrityError as exc:
        raise HTTPException(status_code=409, detail=f"Contact {request.id} already exists") from exc

    return {"message": "Contact added successfully", "contact_id": contact_id}


@app.delete("/contacts/{contact_id}")
def delete_contact(contact_id: int, store: ContactStore = Depends(get_store)):
    """Soft delete: the row stays but no longer takes part in matching."""
    with store.transaction() as repo:
        deleted = repo.soft_delete(contact_id)

    if not deleted:
        raise HTTPException(status_code=404, detail=f"Contact {contact_id} not found")
    return {"message": "Contact deleted", "contact_id": contact_id}


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)

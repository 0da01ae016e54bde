"""Document listing and deletion endpoints."""

from fastapi import APIRouter

from askly.api.deps import CurrentUserId, Store

router = APIRouter(prefix="/documents")


@router.get("")
async def list_documents(user_id: CurrentUserId, store: Store):
    """List the calling user's documents, newest first."""
    documents = await store.list_documents(user_id)
    return {
        "success": True,
        "documents": [d.to_dict() for d in documents],
        "count": len(documents),
    }


@router.delete("/{document_id}")
async def delete_document(document_id: str, user_id: CurrentUserId, store: Store):
    """Delete one of the calling user's documents.

    Deleting an unknown or already deleted document also succeeds.
    """
    deleted = await store.delete_document(user_id, document_id)
    return {
        "success": True,
        "message": "Document deleted successfully",
        "documentId": document_id,
        "chunksDeleted": deleted,
    }

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool

from studylab.dependencies import get_blob_store
from studylab.errors import ExtractionError
from studylab.middleware.rate_limit import upload_limit
from studylab.schemas import SourceDocument
from studylab.services.chunking import split_text_into_chunks
from studylab.services.extraction import extract_text, validate_file
from studylab.services.stores import FileBlobStore


router = APIRouter(prefix="/files", tags=["files"])


def _processed(file_id: str, document: SourceDocument) -> dict:
    chunks = split_text_into_chunks(document.raw_text, {"source_name": document.source_name})
    return {
        "file_id": file_id,
        "name": document.source_name,
        "text": document.raw_text,
        "info": document.type_info,
        "num_pages": document.num_pages,
        "chunks": [c.content for c in chunks],
    }


@router.post("/process")
@upload_limit()
async def process_file(request: Request, file: UploadFile = File(...), blobs: FileBlobStore = Depends(get_blob_store)):
    """Extract text from an uploaded PDF/audio file, store it and split the text into chunks"""
    content = await file.read()
    file_name = file.filename or "upload"
    try:
        validate_file(file_name, len(content))
        document = await run_in_threadpool(extract_text, content, file_name)
    except ExtractionError as e:
        raise HTTPException(status_code=400, detail=f"File processing failed: {e}")
    file_id = await run_in_threadpool(blobs.put, content, file_name)
    return _processed(file_id, document)


@router.post("/{file_id}/process")
@upload_limit()
async def process_stored_file(request: Request, file_id: str, name: str, blobs: FileBlobStore = Depends(get_blob_store)):
    """Re-extract a previously stored file"""
    try:
        content = await run_in_threadpool(blobs.get, file_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="File not found")
    try:
        document = await run_in_threadpool(extract_text, content, name)
    except ExtractionError as e:
        raise HTTPException(status_code=400, detail=f"File processing failed: {e}")
    return _processed(file_id, document)

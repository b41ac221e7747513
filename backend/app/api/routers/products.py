"""CRUD, search and soft-delete/restore endpoints for the product catalog."""

from __future__ import annotations

import logging
import mimetypes

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Response,
    UploadFile,
    status,
)
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.exc import SQLAlchemyError

from app.api.dependencies.services import (
    get_attachment_manager,
    get_lifecycle,
    get_product_store,
)
from app.api.schemas.product import (
    DeletionScope,
    ProductCreate,
    ProductListParams,
    ProductListResponse,
    ProductRead,
    ProductUpdate,
)
from app.core.exceptions import (
    CatalogError,
    InvalidStateError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from app.services.product_lifecycle import ProductLifecycle
from app.services.product_store import ProductPage, ProductStore
from app.storage.attachments import AttachmentManager, ImageUpload

logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(exc: CatalogError) -> HTTPException:
    """Translate core errors into HTTP responses."""
    if isinstance(exc, ValidationError):
        return HTTPException(
            status_code=422,
            detail={"message": str(exc), "fields": exc.fields},
        )
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidStateError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, StorageError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Image storage is unavailable",
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred",
    )


def _schema_error(exc: SchemaValidationError) -> HTTPException:
    fields = {
        ".".join(str(part) for part in err["loc"]) or "body": err["msg"]
        for err in exc.errors()
    }
    return _http_error(ValidationError(fields))


async def _read_image(
    image: UploadFile | None, attachments: AttachmentManager
) -> ImageUpload | None:
    if image is None or not image.filename:
        return None
    # One byte past the limit is enough for validation to reject oversize files
    content = await image.read(attachments.max_bytes + 1)
    return ImageUpload(
        content=content, filename=image.filename, content_type=image.content_type
    )


def _page_response(page: ProductPage) -> ProductListResponse:
    return ProductListResponse(
        items=[ProductRead.model_validate(p) for p in page.items],
        total=page.total,
        page=page.page,
        page_size=page.page_size,
    )


def _list(store: ProductStore, params: ProductListParams) -> ProductListResponse:
    try:
        return _page_response(store.list(params))
    except SQLAlchemyError as e:
        logger.error(f"Database error listing products: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve products",
        ) from e


@router.get(
    "/",
    summary="List products with keyword search, price sort and pagination",
    response_model=ProductListResponse,
)
async def list_products(
    keyword: str | None = Query(
        None, description="Exact price if numeric, otherwise text search"
    ),
    sort: str | None = Query(
        None, description="price-asc | price-desc; anything else is newest first"
    ),
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int | None = Query(None, ge=1, description="Items per page"),
    include_deleted: bool = Query(False, description="Also return soft-deleted rows"),
    store: ProductStore = Depends(get_product_store),
) -> ProductListResponse:
    """Return one page of products; soft-deleted rows are hidden by default."""
    options = {"keyword": keyword, "sort": sort, "page": page}
    if page_size is not None:
        options["page_size"] = page_size
    options["scope"] = DeletionScope.ALL if include_deleted else DeletionScope.ACTIVE
    return _list(store, ProductListParams(**options))


@router.get(
    "/trash",
    summary="List soft-deleted products available for restore",
    response_model=ProductListResponse,
)
async def list_deleted_products(
    keyword: str | None = Query(None),
    sort: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
    store: ProductStore = Depends(get_product_store),
) -> ProductListResponse:
    options = {"keyword": keyword, "sort": sort, "page": page}
    if page_size is not None:
        options["page_size"] = page_size
    options["scope"] = DeletionScope.DELETED
    return _list(store, ProductListParams(**options))


@router.get(
    "/{product_id}",
    summary="Get a product by id (soft-deleted included)",
    response_model=ProductRead,
)
async def get_product(
    product_id: int,
    store: ProductStore = Depends(get_product_store),
) -> ProductRead:
    try:
        return ProductRead.model_validate(store.get(product_id))
    except CatalogError as e:
        raise _http_error(e) from e


@router.get("/{product_id}/image", summary="Download the product image")
async def get_product_image(
    product_id: int,
    store: ProductStore = Depends(get_product_store),
    attachments: AttachmentManager = Depends(get_attachment_manager),
) -> Response:
    try:
        product = store.get(product_id)
        if not product.image_ref:
            raise NotFoundError(f"Product {product_id} has no image")
        content = await run_in_threadpool(attachments.retrieve, product.image_ref)
    except CatalogError as e:
        raise _http_error(e) from e
    media_type = (
        mimetypes.guess_type(product.image_ref)[0] or "application/octet-stream"
    )
    return Response(content=content, media_type=media_type)


@router.post(
    "/",
    summary="Create a product with an optional image",
    status_code=status.HTTP_201_CREATED,
    response_model=ProductRead,
)
async def create_product(
    name: str = Form(...),
    details: str = Form(...),
    size: str = Form(...),
    color: str = Form(...),
    category: str = Form(...),
    price: str = Form(...),
    image: UploadFile | None = File(None),
    lifecycle: ProductLifecycle = Depends(get_lifecycle),
) -> ProductRead:
    """Validate the form, store the image if any, then insert the record."""
    try:
        payload = ProductCreate(
            name=name,
            details=details,
            size=size,
            color=color,
            category=category,
            price=price,
        )
        upload = await _read_image(image, lifecycle.attachments)
        product = await run_in_threadpool(lifecycle.create, payload, upload)
        return ProductRead.model_validate(product)
    except SchemaValidationError as e:
        raise _schema_error(e) from e
    except CatalogError as e:
        raise _http_error(e) from e
    except SQLAlchemyError as e:
        logger.error(f"Database error creating product: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create product",
        ) from e


@router.put(
    "/{product_id}",
    summary="Update product fields and optionally replace its image",
    response_model=ProductRead,
)
async def update_product(
    product_id: int,
    name: str | None = Form(None),
    details: str | None = Form(None),
    size: str | None = Form(None),
    color: str | None = Form(None),
    category: str | None = Form(None),
    price: str | None = Form(None),
    image: UploadFile | None = File(None),
    lifecycle: ProductLifecycle = Depends(get_lifecycle),
) -> ProductRead:
    """Partial update; a new image replaces (and releases) the previous one."""
    try:
        submitted = {
            "name": name,
            "details": details,
            "size": size,
            "color": color,
            "category": category,
            "price": price,
        }
        payload = ProductUpdate(**{k: v for k, v in submitted.items() if v is not None})
        upload = await _read_image(image, lifecycle.attachments)
        product = await run_in_threadpool(
            lifecycle.update, product_id, payload, upload
        )
        return ProductRead.model_validate(product)
    except SchemaValidationError as e:
        raise _schema_error(e) from e
    except CatalogError as e:
        raise _http_error(e) from e
    except SQLAlchemyError as e:
        logger.error(
            f"Database error updating product {product_id}: {e}", exc_info=True
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update product",
        ) from e


@router.delete(
    "/{product_id}",
    summary="Soft delete a product",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_product(
    product_id: int,
    lifecycle: ProductLifecycle = Depends(get_lifecycle),
) -> Response:
    """Hide the product from listings; deleting twice is not an error."""
    try:
        await run_in_threadpool(lifecycle.soft_delete, product_id)
    except CatalogError as e:
        raise _http_error(e) from e
    except SQLAlchemyError as e:
        logger.error(
            f"Database error deleting product {product_id}: {e}", exc_info=True
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete product",
        ) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{product_id}/restore",
    summary="Restore a soft-deleted product",
    response_model=ProductRead,
)
async def restore_product(
    product_id: int,
    lifecycle: ProductLifecycle = Depends(get_lifecycle),
) -> ProductRead:
    try:
        product = await run_in_threadpool(lifecycle.restore, product_id)
        return ProductRead.model_validate(product)
    except CatalogError as e:
        raise _http_error(e) from e
    except SQLAlchemyError as e:
        logger.error(
            f"Database error restoring product {product_id}: {e}", exc_info=True
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to restore product",
        ) from e

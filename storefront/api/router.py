from fastapi import APIRouter
from storefront.api import auth, customers, orders, products, uploads

router = APIRouter()
router.include_router(auth.router, prefix="/auth", tags=["Auth"])
router.include_router(products.router, prefix="/products", tags=["Products"])
router.include_router(orders.router, prefix="/orders", tags=["Orders"])
router.include_router(customers.router, prefix="/customers", tags=["Customers"])
router.include_router(uploads.router, prefix="/upload", tags=["Uploads"])

from .admin_routes import router as admin_routes
from .assistant_routes import router as assistant_routes
from .cart_routes import router as cart_routes
from .discount_routes import router as discount_routes
from .ebook_routes import router as ebook_routes
from .exchange_routes import router as exchange_routes
from .notification_routes import router as notification_routes
from .order_routes import router as order_routes
from .product_routes import router as product_routes
from .transfer_routes import router as transfer_routes

__all__ = [
    'admin_routes',
    'assistant_routes',
    'cart_routes',
    'discount_routes',
    'ebook_routes',
    'exchange_routes',
    'notification_routes',
    'order_routes',
    'product_routes',
    'transfer_routes',
]

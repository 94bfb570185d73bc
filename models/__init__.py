from models.restaurant import Restaurant
from models.user import User
from models.menu_management import MenuCategory, MenuItem
from models.table_management import Table
from models.table_session import TableSession
from models.order_management import Order, OrderItem
from models.billing import Payment, CounterPayment, Receipt
from models.notification import Notification

# Register all models
__all__ = ['Restaurant', 'User', 'MenuCategory', 'MenuItem', 'Table', 'TableSession', 'Order', 'OrderItem',
           'Payment', 'CounterPayment', 'Receipt', 'Notification']

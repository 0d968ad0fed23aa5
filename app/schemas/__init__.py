from .order import CheckoutItem, CheckoutRequest, PaymentRequest, OrderItemResponse, OrderResponse
from .table import TableCreate, TableResponse, ReservationCreate, ReservationResponse

"""
                RestaurantOS Auth Service

Session, tenant and role authority for a multi-role restaurant platform
(owner, manager, kitchen, waiter, delivery, customer) with hybrid
Mock/Real identity backends.
"""

__version__ = "1.0.0"

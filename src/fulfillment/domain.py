"""Fulfillment bounded context — Order Packing, Shipping and Delivery.

Moves paid orders through the warehouse: an admin opens a packing session,
scans items into the box, completes (or abandons) the session, and the order
is then shipped and delivered. Aggregates are persisted through repositories
and every transition is a conditional write; no domain events are raised.
"""

from protean.domain import Domain

fulfillment = Domain(name="fulfillment")

"""Cart item management: commands and handler."""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from ordering.cart.cart import Cart
from ordering.catalogue.lookup import get_product_lookup
from ordering.domain import ordering
from ordering.errors import NotFoundError
from ordering.shared.pricing import MAX_LINE_QUANTITY


def load_or_create_cart(customer_id) -> Cart:
    """Return the customer's cart, creating an empty one on first access."""
    repo = current_domain.repository_for(Cart)
    try:
        return repo.get(customer_id)
    except ObjectNotFoundError:
        return Cart.create(customer_id=customer_id)


@ordering.command(part_of="Cart")
class AddToCart:
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1, max_value=MAX_LINE_QUANTITY)
    variant = Text()  # JSON object


@ordering.command(part_of="Cart")
class UpdateCartItem:
    customer_id = Identifier(required=True)
    item_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1, max_value=MAX_LINE_QUANTITY)


@ordering.command(part_of="Cart")
class RemoveFromCart:
    customer_id = Identifier(required=True)
    item_id = Identifier(required=True)


@ordering.command(part_of="Cart")
class RefreshCart:
    customer_id = Identifier(required=True)


@ordering.command(part_of="Cart")
class ClearCart:
    customer_id = Identifier(required=True)
    reason = String(max_length=50, default="customer")


@ordering.command_handler(part_of=Cart)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        lookup = get_product_lookup()
        product = lookup.find(command.product_id)
        if product is None:
            raise NotFoundError("Product not found", product_id=str(command.product_id))

        cart = load_or_create_cart(command.customer_id)
        item_id = cart.add_item(product, command.quantity, command.variant)
        current_domain.repository_for(Cart).add(cart)
        return item_id

    @handle(UpdateCartItem)
    def update_cart_item(self, command):
        cart = load_or_create_cart(command.customer_id)
        item = next((i for i in cart.items if str(i.id) == str(command.item_id)), None)
        if item is None:
            raise NotFoundError("Item not found in cart", item_id=str(command.item_id))

        product = get_product_lookup().find(str(item.product_id))
        cart.update_item_quantity(command.item_id, command.quantity, product)
        current_domain.repository_for(Cart).add(cart)

    @handle(RemoveFromCart)
    def remove_from_cart(self, command):
        cart = load_or_create_cart(command.customer_id)
        cart.remove_item(command.item_id)
        current_domain.repository_for(Cart).add(cart)

    @handle(RefreshCart)
    def refresh_cart(self, command):
        cart = load_or_create_cart(command.customer_id)
        cart.refresh_availability(get_product_lookup())
        current_domain.repository_for(Cart).add(cart)

    @handle(ClearCart)
    def clear_cart(self, command):
        repo = current_domain.repository_for(Cart)
        try:
            cart = repo.get(command.customer_id)
        except ObjectNotFoundError:
            return
        cart.clear(reason=command.reason)
        repo.add(cart)

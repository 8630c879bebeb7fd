"""Resource types shipped with the reconciler."""

from ..config_engine.resource import Resource
from .application_set import ApplicationSet
from .interface_logical import InterfaceLogical
from .security_address_book import SecurityAddressBook
from .security_idp_custom_attack import SecurityIdpCustomAttack
from .security_ipsec_vpn import SecurityIpsecVpn
from .security_zone_book_address import SecurityZoneBookAddress

# Resource type registry
RESOURCE_TYPES: dict[str, type[Resource]] = {
    cls.type_name: cls
    for cls in (
        ApplicationSet,
        InterfaceLogical,
        SecurityAddressBook,
        SecurityIdpCustomAttack,
        SecurityIpsecVpn,
        SecurityZoneBookAddress,
    )
}


def create_resource(type_name: str) -> Resource:
    """
    Create a resource handler by type name.

    Args:
        type_name: Resource type (e.g. "junos_application_set")

    Returns:
        Resource instance

    Raises:
        ValueError: If the type is unknown
    """
    if type_name not in RESOURCE_TYPES:
        raise ValueError(
            f"Unknown resource type: {type_name}. "
            f"Supported: {list(RESOURCE_TYPES.keys())}"
        )
    return RESOURCE_TYPES[type_name]()


__all__ = [
    "RESOURCE_TYPES",
    "create_resource",
    "ApplicationSet",
    "InterfaceLogical",
    "SecurityAddressBook",
    "SecurityIdpCustomAttack",
    "SecurityIpsecVpn",
    "SecurityZoneBookAddress",
]

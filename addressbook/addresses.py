"""Address management with the one-default-per-user rule."""
from __future__ import annotations

import logging
from typing import Callable, List, Optional, TypeVar

from .database import Database, UnitOfWork
from .errors import NotFoundError
from .models import Address

logger = logging.getLogger("addressbook.addresses")

_T = TypeVar("_T")


def _address_not_found(address_id: int) -> NotFoundError:
    return NotFoundError(f"Address with ID {address_id} not found")


def _user_not_found(user_id: int) -> NotFoundError:
    return NotFoundError(f"User with ID {user_id} not found")


def promote_default(
    uow: UnitOfWork,
    user_id: int,
    write: Callable[[], _T],
    *,
    keep_id: Optional[int] = None,
) -> _T:
    """Clear the user's current default, then run ``write`` in the same transaction.

    Losers are always cleared before the winner is set. ``keep_id`` spares the
    row that ``write`` is about to mark as default.
    """

    cleared = uow.addresses.clear_defaults(user_id, exclude_id=keep_id)
    if cleared:
        logger.debug("Cleared %s default address(es) for user %s", cleared, user_id)
    return write()


class DefaultAddressManager:
    def __init__(self, database: Database) -> None:
        self._database = database

    def create_address(
        self,
        user_id: int,
        *,
        line1: str,
        city: str,
        country: str,
        is_default: bool = False,
    ) -> Address:
        with self._database.unit_of_work() as uow:
            if not uow.users.exists(user_id):
                raise _user_not_found(user_id)

            def write() -> Address:
                return uow.addresses.create(
                    user_id=user_id,
                    line1=line1,
                    city=city,
                    country=country,
                    is_default=is_default,
                )

            if is_default:
                created = promote_default(uow, user_id, write)
            else:
                created = write()

        if created.is_default:
            logger.info("Address %s created as default for user %s", created.id, user_id)
        return created

    def list_addresses(self) -> List[Address]:
        with self._database.unit_of_work(readonly=True) as uow:
            return uow.addresses.list_all()

    def list_for_user(self, user_id: int) -> List[Address]:
        with self._database.unit_of_work(readonly=True) as uow:
            if not uow.users.exists(user_id):
                raise _user_not_found(user_id)
            return uow.addresses.list_for_user(user_id)

    def get_address(self, address_id: int) -> Address:
        with self._database.unit_of_work(readonly=True) as uow:
            address = uow.addresses.get(address_id)
        if address is None:
            raise _address_not_found(address_id)
        return address

    def get_default_for_user(self, user_id: int) -> Optional[Address]:
        """Return the user's default address, or ``None``.

        Unknown users are not an error here; they simply have no default.
        """

        with self._database.unit_of_work(readonly=True) as uow:
            return uow.addresses.get_default(user_id)

    def update_address(
        self,
        address_id: int,
        *,
        line1: Optional[str] = None,
        city: Optional[str] = None,
        country: Optional[str] = None,
        is_default: Optional[bool] = None,
    ) -> Address:
        with self._database.unit_of_work() as uow:
            existing = uow.addresses.get(address_id)
            if existing is None:
                raise _address_not_found(address_id)

            def write() -> Optional[Address]:
                return uow.addresses.update(
                    address_id,
                    line1=line1,
                    city=city,
                    country=country,
                    is_default=is_default,
                )

            if is_default is True:
                updated = promote_default(uow, existing.user_id, write, keep_id=address_id)
            else:
                updated = write()

        if updated is None:
            raise _address_not_found(address_id)
        if is_default is True and not existing.is_default:
            logger.info("Address %s is now the default for user %s", address_id, existing.user_id)
        return updated

    def set_as_default(self, address_id: int) -> Address:
        """Make ``address_id`` the owner's only default. Calling it again changes nothing."""

        with self._database.unit_of_work() as uow:
            existing = uow.addresses.get(address_id)
            if existing is None:
                raise _address_not_found(address_id)
            updated = promote_default(
                uow,
                existing.user_id,
                lambda: uow.addresses.update(address_id, is_default=True),
                keep_id=address_id,
            )

        if updated is None:
            raise _address_not_found(address_id)
        if not existing.is_default:
            logger.info("Address %s is now the default for user %s", address_id, existing.user_id)
        return updated

    def remove_address(self, address_id: int) -> None:
        with self._database.unit_of_work() as uow:
            if not uow.addresses.delete(address_id):
                raise _address_not_found(address_id)


__all__ = ["DefaultAddressManager", "promote_default"]

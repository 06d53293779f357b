"""Address books and contacts held for display."""

import asyncio
import logging
from typing import Any, Callable, Optional

from pydantic import ValidationError

from ..api.pipeline import ApiClient
from ..config import ENDPOINTS, ApiEndpoints
from ..models.contact import AddressBook, Contact
from ..utils.exceptions import CalendarClientError, CalendarReadError, SessionExpired

logger = logging.getLogger(__name__)

SORT_KEYS = ("name", "organization", "email", "updated")


def _items(payload: Any, *keys: str) -> list:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in keys:
            if payload.get(key):
                return payload[key]
    return []


class AddressBookStore:
    """Contacts across the user's address books, with selection and sorting."""

    def __init__(
        self,
        api: ApiClient,
        on_warning: Optional[Callable[[str], None]] = None,
        endpoints: ApiEndpoints = ENDPOINTS,
    ):
        self.api = api
        self.on_warning = on_warning
        self.endpoints = endpoints
        self.address_books: list[AddressBook] = []
        self.contacts: list[Contact] = []
        self.selected_address_book_ids: set[str] = set()
        self.search_query = ""
        self.is_loading = False

    async def fetch_address_books(self) -> list[AddressBook]:
        payload = await self.api.get(self.endpoints.address_books)
        try:
            self.address_books = [
                AddressBook.model_validate(ab) for ab in _items(payload, "addressbooks")
            ]
        except ValidationError as e:
            raise CalendarReadError(f"Malformed address book list: {e}") from e
        self.select_all_address_books()
        return self.address_books

    async def fetch_contacts(self) -> list[Contact]:
        """Load contacts of every address book; failing books are skipped."""
        self.is_loading = True
        try:
            outcomes = await asyncio.gather(
                *(self._fetch_book(ab) for ab in self.address_books),
                return_exceptions=True,
            )
        finally:
            self.is_loading = False

        contacts: list[Contact] = []
        for book, outcome in zip(self.address_books, outcomes):
            if isinstance(outcome, SessionExpired):
                raise outcome
            if isinstance(outcome, CalendarClientError):
                message = f"Failed to load contacts for address book {book.name}: {outcome}"
                logger.warning(message)
                if self.on_warning:
                    self.on_warning(message)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            contacts.extend(outcome)

        self.contacts = contacts
        self.search_query = ""
        return contacts

    async def _fetch_book(self, book: AddressBook) -> list[Contact]:
        payload = await self.api.get(self.endpoints.contacts(book.id))
        try:
            return [Contact.model_validate(c) for c in _items(payload, "Contacts", "contacts")]
        except ValidationError as e:
            raise CalendarReadError(f"Malformed contacts in {book.name}: {e}") from e

    async def search_contacts(self, query: str) -> list[Contact]:
        if not query.strip():
            return await self.fetch_contacts()

        self.is_loading = True
        try:
            payload = await self.api.get(self.endpoints.contact_search, params={"q": query})
        finally:
            self.is_loading = False
        try:
            self.contacts = [Contact.model_validate(c) for c in _items(payload, "contacts")]
        except ValidationError as e:
            raise CalendarReadError(f"Malformed search result: {e}") from e
        self.search_query = query
        return self.contacts

    async def delete_contact(self, address_book_id: str, contact_id: str) -> None:
        await self.api.delete(self.endpoints.contact(address_book_id, contact_id))
        self.contacts = [c for c in self.contacts if c.id != contact_id]

    def toggle_address_book(self, address_book_id: str) -> None:
        if address_book_id in self.selected_address_book_ids:
            self.selected_address_book_ids.discard(address_book_id)
        else:
            self.selected_address_book_ids.add(address_book_id)

    def select_all_address_books(self) -> None:
        self.selected_address_book_ids = {ab.id for ab in self.address_books}

    @property
    def filtered_contacts(self) -> list[Contact]:
        # Contacts reference their book by UUID, selection is by id
        selected = {
            ab.uuid or ab.id
            for ab in self.address_books
            if ab.id in self.selected_address_book_ids
        }
        return [c for c in self.contacts if c.addressbook_id in selected]

    def sorted_contacts(self, sort_by: str = "name") -> list[Contact]:
        if sort_by not in SORT_KEYS:
            raise ValueError(f"sort_by must be one of {', '.join(SORT_KEYS)}")
        contacts = self.filtered_contacts
        if sort_by == "name":
            return sorted(contacts, key=lambda c: (c.formatted_name or "").casefold())
        if sort_by == "organization":
            return sorted(contacts, key=lambda c: (c.organization or "").casefold())
        if sort_by == "email":
            return sorted(contacts, key=lambda c: c.primary_email.casefold())
        # Most recently updated first; undated contacts last
        return sorted(
            contacts,
            key=lambda c: c.updated_at.timestamp() if c.updated_at else float("-inf"),
            reverse=True,
        )

    def grouped_contacts(self, sort_by: str = "name") -> dict[str, list[Contact]]:
        """Group contacts by the first letter of their name, '#' for the rest."""
        groups: dict[str, list[Contact]] = {}
        for contact in self.sorted_contacts(sort_by):
            letter = (contact.formatted_name or "?")[0].upper()
            key = letter if "A" <= letter <= "Z" else "#"
            groups.setdefault(key, []).append(contact)
        return dict(sorted(groups.items()))

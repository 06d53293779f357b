import pytest

from calendar_client.config import ENDPOINTS
from calendar_client.contacts.store import AddressBookStore
from calendar_client.utils.exceptions import ServerFault, SessionExpired


def contact(cid, name, book="uuid-1", org=None, email=None, updated=None):
    return {
        "id": cid,
        "addressbook_id": book,
        "formatted_name": name,
        "organization": org,
        "emails": [{"value": email}] if email else None,
        "updated_at": updated,
    }


class FakeApi:
    """Answers GET/DELETE from a path table; exceptions are raised."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    async def get(self, path, params=None):
        self.calls.append(("GET", path, params))
        result = self.routes[path]
        if isinstance(result, BaseException):
            raise result
        return result

    async def delete(self, path, params=None):
        self.calls.append(("DELETE", path, params))
        return "Contact deleted"


@pytest.fixture
def api():
    return FakeApi(
        {
            ENDPOINTS.address_books: {
                "addressbooks": [
                    {"ID": 1, "UUID": "uuid-1", "Name": "Personal"},
                    {"ID": 2, "UUID": "uuid-2", "Name": "Work"},
                ]
            },
            ENDPOINTS.contacts("1"): {
                "Contacts": [
                    contact(10, "bob Builder", email="bob@example.com", updated="2026-01-02T00:00:00Z"),
                    contact(11, "Ada Lovelace", org="Analytical", email="ada@example.com"),
                    contact(12, "42 Club", org="Numbers"),
                ]
            },
            ENDPOINTS.contacts("2"): {
                "Contacts": [contact(20, "Carol", book="uuid-2", org="Acme", updated="2026-03-01T00:00:00Z")]
            },
            ENDPOINTS.contact_search: {"contacts": [contact(11, "Ada Lovelace")]},
        }
    )


@pytest.fixture
def warnings():
    return []


@pytest.fixture
def store(api, warnings):
    return AddressBookStore(api, on_warning=warnings.append)


@pytest.mark.asyncio
async def test_fetch_contacts_from_every_book(store):
    await store.fetch_address_books()
    contacts = await store.fetch_contacts()

    assert store.selected_address_book_ids == {"1", "2"}
    assert sorted(c.id for c in contacts) == ["10", "11", "12", "20"]


@pytest.mark.asyncio
async def test_failing_book_is_skipped_with_warning(store, api, warnings):
    api.routes[ENDPOINTS.contacts("2")] = ServerFault(500, "Failed to list contacts")
    await store.fetch_address_books()

    contacts = await store.fetch_contacts()

    assert sorted(c.id for c in contacts) == ["10", "11", "12"]
    assert len(warnings) == 1 and "Work" in warnings[0]


@pytest.mark.asyncio
async def test_session_loss_propagates(store, api):
    api.routes[ENDPOINTS.contacts("1")] = SessionExpired()
    await store.fetch_address_books()

    with pytest.raises(SessionExpired):
        await store.fetch_contacts()


@pytest.mark.asyncio
async def test_filter_sort_and_group(store):
    await store.fetch_address_books()
    await store.fetch_contacts()
    store.toggle_address_book("2")

    assert [c.formatted_name for c in store.sorted_contacts("name")] == ["42 Club", "Ada Lovelace", "bob Builder"]
    assert [c.id for c in store.sorted_contacts("email")] == ["12", "11", "10"]
    groups = store.grouped_contacts()
    assert list(groups) == ["#", "A", "B"]

    store.select_all_address_books()
    assert [c.id for c in store.sorted_contacts("updated")][:2] == ["20", "10"]
    assert [c.organization for c in store.sorted_contacts("organization")][-1] == "Numbers"


@pytest.mark.asyncio
async def test_unknown_sort_key_rejected(store):
    with pytest.raises(ValueError):
        store.sorted_contacts("age")


@pytest.mark.asyncio
async def test_search_and_clear_search(store, api):
    await store.fetch_address_books()

    found = await store.search_contacts("ada")
    assert [c.id for c in found] == ["11"]
    assert store.search_query == "ada"
    assert ("GET", ENDPOINTS.contact_search, {"q": "ada"}) in api.calls

    everyone = await store.search_contacts("  ")
    assert len(everyone) == 4
    assert store.search_query == ""


@pytest.mark.asyncio
async def test_delete_contact_removes_it_locally(store, api):
    await store.fetch_address_books()
    await store.fetch_contacts()

    await store.delete_contact("1", "11")

    assert "11" not in {c.id for c in store.contacts}
    assert api.calls[-1] == ("DELETE", ENDPOINTS.contact("1", "11"), None)

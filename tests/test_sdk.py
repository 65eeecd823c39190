"""Resource clients: endpoint paths, response unwrapping and error wording."""

import asyncio
import json
import urllib.error

import pytest

from estate_client.core.errors import CONNECTION_ERROR_MESSAGE, INVALID_FORMAT_MESSAGE, APIError
from estate_client.sdk import normalise_property_payload

# =============================================================================
# Properties
# =============================================================================


class TestProperties:
    @pytest.mark.parametrize(
        "payload",
        [
            {"property": {"id": 7, "title": "Villa"}},
            {"data": {"id": 7, "title": "Villa"}},
            {"id": 7, "title": "Villa"},
        ],
    )
    def test_get_unwraps_any_shape(self, server, client, payload):
        server.add("GET", "/api/properties/7", payload)

        prop = asyncio.run(client.properties.get("7"))

        assert prop.id == "7"
        assert prop.title == "Villa"

    def test_get_rejects_non_object(self, server, client):
        server.add("GET", "/api/properties/7", ["not", "an", "object"])

        with pytest.raises(APIError) as exc_info:
            asyncio.run(client.properties.get("7"))

        assert exc_info.value.message == INVALID_FORMAT_MESSAGE

    def test_list_tolerates_unexpected_shape(self, server, client):
        server.add("GET", "/api/properties", {"properties": "nope"})
        assert asyncio.run(client.properties.list()) == []

    def test_list_reads_camel_case(self, server, client):
        server.add(
            "GET",
            "/api/properties",
            {"data": [{"_id": "p1", "propertyType": "HOUSE", "squareFootage": 120, "agent": {"id": 3}}]},
        )

        [prop] = asyncio.run(client.properties.list({"city": "Lagos", "propertyType": "all"}))

        assert prop.id == "p1"
        assert prop.property_type == "HOUSE"
        assert prop.square_footage == 120
        assert prop.agent_id == "3"
        assert server.query() == {"city": ["Lagos"]}

    def test_list_page_sends_paging(self, server, client):
        server.add("GET", "/api/properties", {"properties": [], "pagination": {"totalPages": 3}})

        page = asyncio.run(client.properties.list_page({"priceRange": "all", "search": "pool"}, page=2, limit=6))

        assert server.query() == {"search": ["pool"], "page": ["2"], "limit": ["6"]}
        assert page.page == 2
        assert page.has_more is True

    @pytest.mark.parametrize(
        "pagination,expected",
        [
            ({"hasMore": False, "totalPages": 9}, False),
            ({"totalPages": 1}, False),
            ({"total": 30}, True),
            ({"total": 12}, False),
            ({"totalPages": "2"}, True),
            ({"totalPages": "many"}, False),
            ({"total": None, "totalPages": [3]}, False),
            (None, False),
        ],
    )
    def test_list_page_has_more(self, server, client, pagination, expected):
        body = {"properties": [{"id": i} for i in range(12)]}
        if pagination is not None:
            body["pagination"] = pagination
        server.add("GET", "/api/properties", body)

        page = asyncio.run(client.properties.list_page(page=1, limit=12))

        assert len(page.items) == 12
        assert page.has_more is expected

    def test_list_page_skips_malformed_items(self, server, client):
        server.add(
            "GET",
            "/api/properties",
            {"properties": [None, {"id": 1, "images": None}, "junk", {"id": 2}], "pagination": {"total": "?"}},
        )

        page = asyncio.run(client.properties.list_page(page=1, limit=12))

        assert [p.id for p in page.items] == ["1", "2"]
        assert page.items[0].images == []
        assert page.has_more is False
        assert page.total_count is None

    def test_list_page_empty_body_is_error(self, server, client):
        server.add("GET", "/api/properties", status=204)

        with pytest.raises(APIError):
            asyncio.run(client.properties.list_page())

    def test_create_normalises_payload(self, server, client):
        server.add("POST", "/api/properties", {"property": {"id": "new"}})

        prop = asyncio.run(client.properties.create({"title": "Flat", "area": "Ikeja", "size": "80", "price": "1e5"}))

        sent = json.loads(server.last.data)
        assert prop.id == "new"
        assert sent["city"] == "Ikeja"
        assert sent["squareFootage"] == 80
        assert sent["price"] == 100000
        assert sent["propertyType"] == "HOUSE"
        assert sent["status"] == "PENDING"


class TestNormalisePropertyPayload:
    def test_bad_numbers_become_zero(self):
        payload = normalise_property_payload({"price": "n/a", "bedrooms": None, "propertyType": "apartment"})

        assert payload["price"] == 0
        assert payload["bedrooms"] == 0
        assert payload["propertyType"] == "APARTMENT"
        assert payload["zipCode"] == ""


# =============================================================================
# Favorites
# =============================================================================


class TestFavorites:
    def test_list_accepts_mixed_shapes(self, server, client):
        server.add(
            "GET",
            "/api/favorites",
            {"favorites": [{"propertyId": 1}, {"property": {"id": "2"}}, "3", {"id": 4}, {"nothing": True}]},
        )

        assert asyncio.run(client.favorites.list()) == {"1", "2", "3", "4"}

    def test_add_and_remove(self, server, client):
        server.add("POST", "/api/favorites", {"success": True})
        server.add("DELETE", "/api/favorites/9", status=204)

        asyncio.run(client.favorites.add("9"))
        assert json.loads(server.last.data) == {"propertyId": "9"}

        asyncio.run(client.favorites.remove("9"))
        assert server.last.get_method() == "DELETE"


# =============================================================================
# Agents
# =============================================================================


class TestAgents:
    def test_nested_user_fields(self, server, client):
        server.add(
            "GET",
            "/api/agents",
            {"agents": [{"id": 5, "businessName": "Acme Homes", "user": {"firstName": "Ada", "email": "ada@acme.io"}}]},
        )

        [agent] = asyncio.run(client.agents.list({"status": "all"}))

        assert agent.first_name == "Ada"
        assert agent.email == "ada@acme.io"
        assert agent.business_name == "Acme Homes"
        assert server.query() == {}


# =============================================================================
# Reviews
# =============================================================================


class TestReviews:
    def test_create_failure_generic_message(self, server, client):
        server.add("POST", "/api/reviews", {}, status=500, reason="Internal Server Error")

        with pytest.raises(APIError) as exc_info:
            asyncio.run(client.reviews.create({"rating": 5}))

        assert exc_info.value.message == "Failed to create review"
        assert exc_info.value.status == 500

    def test_create_failure_server_message(self, server, client):
        server.add("POST", "/api/reviews", {"error": "Already reviewed"}, status=409, reason="Conflict")

        with pytest.raises(APIError) as exc_info:
            asyncio.run(client.reviews.create({"rating": 5}))

        assert exc_info.value.message == "Already reviewed"

    def test_transport_failure_not_rewritten(self, server, client):
        server.add("POST", "/api/reviews/3/like", error=urllib.error.URLError(ConnectionRefusedError()))

        with pytest.raises(APIError) as exc_info:
            asyncio.run(client.reviews.like("3"))

        assert exc_info.value.message == CONNECTION_ERROR_MESSAGE

    def test_create_tolerates_empty_body(self, server, client):
        server.add("POST", "/api/reviews", status=201)

        review = asyncio.run(client.reviews.create({"rating": 4, "comment": "Nice"}))

        assert review.id == ""

    def test_for_property(self, server, client):
        server.add("GET", "/api/reviews/property/7", {"reviews": [{"id": 1, "rating": 4, "content": "Lovely"}]})

        [review] = asyncio.run(client.reviews.for_property("7"))

        assert review.rating == 4
        assert review.comment == "Lovely"


# =============================================================================
# Admin / contacts / uploads
# =============================================================================


class TestAdmin:
    def test_leads(self, server, client):
        server.add("GET", "/api/admin/leads", {"leads": [{"id": 1, "firstName": "Bo", "lastName": "Li"}]})

        [lead] = asyncio.run(client.admin.leads())

        assert lead.name == "Bo Li"
        assert lead.status == "NEW"

    def test_update_contact_status(self, server, client):
        server.add("PUT", "/api/admin/contacts/4/status", {"success": True})

        asyncio.run(client.admin.update_contact_status("4", "CONTACTED"))

        assert json.loads(server.last.data) == {"status": "CONTACTED"}

    def test_reject_review_failure_wording(self, server, client):
        server.add("POST", "/api/admin/reviews/2/reject", status=500, reason="Internal Server Error")

        with pytest.raises(APIError) as exc_info:
            asyncio.run(client.admin.reject_review("2"))

        assert exc_info.value.message == "Failed to reject review"


class TestContacts:
    def test_submit(self, server, client):
        server.add("POST", "/api/contact", {"success": True})

        asyncio.run(client.contacts.submit({"name": "Bo", "email": "bo@x.io", "message": "Hi"}))

        assert json.loads(server.last.data)["email"] == "bo@x.io"
        assert not server.last.has_header("Authorization")


class TestUploads:
    def test_property_images(self, server, client):
        server.add("POST", "/api/upload/properties/images", {"imageUrls": ["https://cdn/a.jpg"]})

        urls = asyncio.run(client.uploads.property_images([("a.jpg", b"JPEG")]))

        assert urls == ["https://cdn/a.jpg"]
        assert b'name="images"; filename="a.jpg"' in server.last.data

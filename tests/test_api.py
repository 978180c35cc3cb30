from bson import ObjectId
import httpx
import pytest

from lms.database import db_manager
from lms.main import app

pytestmark = pytest.mark.anyio


@pytest.fixture
async def client(store):
    db_manager.use(store)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    db_manager.store = None


async def _create(client, path, payload):
    response = await client.post(path, json=payload)
    assert response.status_code == 201, response.text
    return response.json()


async def _course(client, title="Algorithms"):
    instructor = await _create(client, "/instructors", {
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": f"{title.lower()}@example.com",
    })
    course = await _create(client, "/courses", {
        "title": title,
        "description": "Sorting and searching",
        "instructor": instructor["_id"],
        "tags": ["cs"],
    })
    return instructor, course


async def test_create_uses_camel_case_and_string_ids(client):
    instructor, course = await _course(client)

    assert course["instructor"] == instructor["_id"]
    assert course["enrollmentCount"] == 0
    assert course["status"] == "draft"
    assert "createdAt" in course

    refreshed = (await client.get(f"/instructors/{instructor['_id']}")).json()
    assert refreshed["courses"] == [course["_id"]]


async def test_course_details_tree(client):
    instructor, course = await _course(client)
    module = await _create(client, "/modules", {"title": "Basics", "course": course["_id"], "order": 1})
    await _create(client, "/lessons", {"title": "Second", "module": module["_id"], "order": 2})
    await _create(client, "/lessons", {"title": "First", "module": module["_id"], "order": 1})
    await _create(client, "/assignments", {
        "title": "HW",
        "description": "Implement quicksort",
        "course": course["_id"],
        "dueDate": "2030-01-01T00:00:00",
        "totalPoints": 10,
    })

    response = await client.get(f"/courses/{course['_id']}/details")

    assert response.status_code == 200
    details = response.json()
    assert details["instructor"]["_id"] == instructor["_id"]
    assert details["instructor"]["fullName"] == "Ada Lovelace"
    assert [lesson["title"] for lesson in details["modules"][0]["lessons"]] == ["First", "Second"]
    assert details["assignments"][0]["title"] == "HW"


async def test_list_returns_pagination_envelope(client):
    await _course(client, "One")
    await _course(client, "Two")

    response = await client.get("/courses", params={"page": 1, "limit": 1})

    body = response.json()
    assert len(body["items"]) == 1
    assert body["meta"]["totalItems"] == 2
    assert body["meta"]["totalPages"] == 2


async def test_unknown_and_malformed_ids(client):
    missing = await client.get(f"/courses/{ObjectId()}")
    assert missing.status_code == 404
    assert "not found" in missing.json()["detail"]

    malformed = await client.get("/courses/not-an-id")
    assert malformed.status_code == 400


async def test_duplicate_module_order_is_a_conflict(client):
    _, course = await _course(client)
    payload = {"title": "Basics", "course": course["_id"], "order": 1}
    await _create(client, "/modules", payload)

    response = await client.post("/modules", json=payload)

    assert response.status_code == 409


async def test_enrollment_round_trip(client):
    _, course = await _course(client)
    student = await _create(client, "/students", {
        "firstName": "Alan", "lastName": "Turing", "email": "alan@example.com",
    })
    enroll = f"/students/{student['_id']}/enroll/{course['_id']}"

    first = await client.post(enroll)
    assert first.status_code == 200
    assert first.json()["enrolledCourses"] == [course["_id"]]
    assert (await client.post(enroll)).status_code == 409

    dashboard = (await client.get(f"/students/{student['_id']}/dashboard")).json()
    assert [c["_id"] for c in dashboard["courses"]] == [course["_id"]]

    left = await client.post(f"/students/{student['_id']}/unenroll/{course['_id']}")
    assert left.json()["enrolledCourses"] == []
    assert (await client.get(f"/courses/{course['_id']}")).json()["enrollmentCount"] == 0


async def test_delete_course_response(client):
    _, course = await _course(client)

    response = await client.delete(f"/courses/{course['_id']}")

    assert response.json() == {"success": True, "_id": course["_id"]}
    assert (await client.get(f"/courses/{course['_id']}")).status_code == 404


async def test_validation_errors_are_rejected(client):
    response = await client.post("/modules", json={"title": "No course", "order": 0})
    assert response.status_code == 422


async def test_health_and_repair(client):
    health = (await client.get("/health")).json()
    assert health["status"] == "UP"
    assert health["store"] == "MemoryEntityStore"

    repair = await client.post("/admin/repair-references")
    assert repair.json() == {"success": True, "updated": {"instructors": 0, "students": 0, "courses": 0}}

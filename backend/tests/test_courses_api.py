from __future__ import annotations

import pytest

from tests.testkit import ApiError, add_lesson, add_material, create_course, create_promo, register_user, set_role


def test_free_course_shows_content(api, admin, identity_factory):
    user = register_user(api, identity_factory, prefix="course_free")
    course = create_course(api, admin["token"])
    lesson = add_lesson(api, admin["token"], course["id"])
    add_material(api, admin["token"], course["id"], lesson_id=lesson["id"])

    detail = api.call("GET", f"/courses/{course['id']}", token=user["token"])
    assert detail["access"]["has_access"] is True
    assert detail["access"]["reason"] == "free"
    assert detail["lessons"][0]["video_url"] == "https://youtu.be/abc123"
    assert detail["materials"][0]["file_url"].endswith("apostila.pdf")
    assert detail["materials"][0]["lesson_id"] == lesson["id"]

    anonymous = api.call("GET", f"/courses/{course['id']}")
    assert anonymous["access"]["reason"] == "free"


def test_paid_course_withholds_content_until_purchase(api, admin, identity_factory):
    user = register_user(api, identity_factory, prefix="course_paid")
    master = register_user(api, identity_factory, prefix="course_paid_master")
    set_role(api, admin["token"], master["id"], "E-MASTER", pro_days=30)

    course = create_course(api, admin["token"], title="Elementos Finitos", price="149.90")
    add_lesson(api, admin["token"], course["id"])
    add_material(api, admin["token"], course["id"])

    detail = api.call("GET", f"/courses/{course['id']}", token=user["token"])
    assert detail["access"]["has_access"] is False
    assert detail["access"]["reason"] == "requires_purchase"
    assert detail["lessons"][0]["title"] == "Aula 1"
    assert detail["lessons"][0]["video_url"] is None
    assert detail["materials"][0]["file_url"] is None

    # E-MASTER only unlocks free courses.
    master_access = api.call("GET", f"/courses/{course['id']}/access", token=master["token"])
    assert master_access["has_access"] is False

    lessons = api.call("GET", f"/courses/{course['id']}/lessons", token=user["token"])
    assert lessons[0]["video_url"] is None

    admin_view = api.call("GET", f"/courses/{course['id']}/lessons", token=admin["token"])
    assert admin_view[0]["video_url"] == "https://youtu.be/abc123"


def test_master_gets_free_courses(api, admin, identity_factory):
    master = register_user(api, identity_factory, prefix="course_master")
    set_role(api, admin["token"], master["id"], "E-MASTER", pro_days=30)
    course = create_course(api, admin["token"])
    access = api.call("GET", f"/courses/{course['id']}/access", token=master["token"])
    assert access["reason"] == "master_free"


def test_promo_gated_course(api, admin, identity_factory):
    user = register_user(api, identity_factory, prefix="course_promo")
    course = create_course(api, admin["token"], title="NR-10", requires_promo_code=True)
    add_lesson(api, admin["token"], course["id"])
    create_promo(api, admin["token"], "NR10-15", promo_type="course", target_role=None, course_id=course["id"], days=15)

    before = api.call("GET", f"/courses/{course['id']}", token=user["token"])
    assert before["access"]["reason"] == "requires_promo_code"
    assert before["access"]["requires_promo_code"] is True
    assert before["lessons"][0]["video_url"] is None

    other = create_course(api, admin["token"], title="Outro", requires_promo_code=True)
    with pytest.raises(ApiError) as wrong:
        api.call("POST", "/promocodes/use", token=user["token"], body={"code": "NR10-15", "course_id": other["id"]})
    assert wrong.value.status_code == 400

    used = api.call("POST", "/promocodes/use", token=user["token"], body={"code": "NR10-15", "course_id": course["id"]})
    assert used["course_id"] == course["id"]
    assert used["days"] == 15

    after = api.call("GET", f"/courses/{course['id']}", token=user["token"])
    assert after["access"]["reason"] == "promo_code"
    assert after["lessons"][0]["video_url"] == "https://youtu.be/abc123"


def test_hidden_course_only_for_admin(api, admin, identity_factory):
    user = register_user(api, identity_factory, prefix="course_hidden")
    course = create_course(api, admin["token"], title="Rascunho")
    toggled = api.call("PATCH", f"/courses/{course['id']}/toggle-visibility", token=admin["token"])
    assert toggled["is_hidden"] is True

    assert [c["id"] for c in api.call("GET", "/courses", token=user["token"])] == []
    assert [c["id"] for c in api.call("GET", "/courses", token=admin["token"])] == [course["id"]]

    with pytest.raises(ApiError) as err:
        api.call("GET", f"/courses/{course['id']}", token=user["token"])
    assert err.value.status_code == 404

    admin_detail = api.call("GET", f"/courses/{course['id']}", token=admin["token"])
    assert admin_detail["access"]["reason"] == "admin"


def test_purchase_without_stripe_is_unavailable(api, admin, identity_factory):
    user = register_user(api, identity_factory, prefix="course_nostripe")
    paid = create_course(api, admin["token"], price="80.00")
    free = create_course(api, admin["token"], title="Gratuito")

    with pytest.raises(ApiError) as not_configured:
        api.call("POST", f"/courses/{paid['id']}/purchase", token=user["token"])
    assert not_configured.value.status_code == 503

    with pytest.raises(ApiError) as free_err:
        api.call("POST", f"/courses/{free['id']}/purchase", token=user["token"])
    assert free_err.value.status_code == 400


def test_course_admin_crud(api, admin, identity_factory):
    course = create_course(api, admin["token"])
    updated = api.call("PATCH", f"/courses/{course['id']}", token=admin["token"], body={"level": "advanced", "price": "10.00"})
    assert updated["level"] == "advanced"
    assert float(updated["price"]) == 10.0

    first = add_lesson(api, admin["token"], course["id"])
    second = add_lesson(api, admin["token"], course["id"], title="Aula 2")
    assert (first["order"], second["order"]) == (1, 2)

    edited = api.call(
        "PATCH",
        f"/courses/{course['id']}/lessons/{second['id']}",
        token=admin["token"],
        body={"video_source": "drive", "video_url": "https://drive.example.com/v"},
    )
    assert edited["video_source"] == "drive"

    material = add_material(api, admin["token"], course["id"], lesson_id=first["id"])
    api.call("DELETE", f"/courses/{course['id']}/lessons/{first['id']}", token=admin["token"])
    materials = api.call("GET", f"/courses/{course['id']}/materials", token=admin["token"])
    assert materials[0]["id"] == material["id"]
    assert materials[0]["lesson_id"] is None

    other = create_course(api, admin["token"], title="Outro")
    with pytest.raises(ApiError) as foreign_lesson:
        add_material(api, admin["token"], other["id"], lesson_id=second["id"])
    assert foreign_lesson.value.status_code == 400

    user = register_user(api, identity_factory, prefix="course_noadmin")
    with pytest.raises(ApiError) as forbidden:
        create_course(api, user["token"])
    assert forbidden.value.status_code == 403

    api.call("DELETE", f"/courses/{course['id']}", token=admin["token"])
    with pytest.raises(ApiError) as gone:
        api.call("GET", f"/courses/{course['id']}", token=admin["token"])
    assert gone.value.status_code == 404

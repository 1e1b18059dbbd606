from funnel_builder.db.repositories.pages import PagesRepository

from conftest import OTHER_USER_ID, TEST_USER_ID


def _page(db_session, project, user_id=TEST_USER_ID):
    return PagesRepository(db_session, "enrollment").create(
        user_id=user_id,
        project_id=project.id,
        headline="Coaching Accelerator",
        html_content="<html><body><h1>Coaching Accelerator</h1></body></html>",
    )


def test_publish_serves_page_publicly(api_client, project, db_session):
    page = _page(db_session, project)

    published = api_client.post(f"/pages/enrollment/{page.id}/publish", json={})
    assert published.status_code == 200
    slug = published.json()["vanity_slug"]
    assert slug == "scale-your-coaching-enrollment"
    assert published.json()["is_published"] is True

    public = api_client.get(f"/p/{slug}")
    assert public.status_code == 200
    assert public.headers["content-type"].startswith("text/html")
    assert "<h1>Coaching Accelerator</h1>" in public.text

    assert api_client.post(f"/pages/enrollment/{page.id}/unpublish").status_code == 200
    assert api_client.get(f"/p/{slug}").status_code == 404


def test_vanity_slugs_stay_unique_across_page_kinds(api_client, project, db_session):
    first = _page(db_session, project)
    second = PagesRepository(db_session, "registration").create(
        user_id=TEST_USER_ID, project_id=project.id, headline="Free Class"
    )

    a = api_client.post(f"/pages/enrollment/{first.id}/publish", json={"vanitySlug": "Join Now"}).json()
    b = api_client.post(f"/pages/registration/{second.id}/publish", json={"vanitySlug": "join-now"}).json()

    assert a["vanity_slug"] == "join-now"
    assert b["vanity_slug"] == "join-now-2"


def test_pages_of_other_users_are_hidden(api_client, other_project, db_session):
    page = _page(db_session, other_project, user_id=OTHER_USER_ID)
    assert api_client.get(f"/pages/enrollment/{page.id}").status_code == 404
    assert api_client.get(f"/pages/bogus/{page.id}").status_code == 422


def test_watch_page_video_must_be_ready(api_client, project, db_session):
    created = api_client.post(
        "/pitch-videos", json={"projectId": project.id, "videoUrl": "https://cdn.test/raw.mp4"}
    )
    assert created.status_code == 201
    video = created.json()
    assert video["processing_status"] == "uploaded"

    page = PagesRepository(db_session, "watch").create(
        user_id=TEST_USER_ID, project_id=project.id, headline="Watch the Masterclass"
    )
    response = api_client.post(f"/pages/watch/{page.id}/video", json={"pitchVideoId": video["id"]})
    assert response.status_code == 409

    bad = api_client.patch(f"/pitch-videos/{video['id']}/status", json={"status": "ready"})
    assert bad.status_code == 409
    for step in ("processing", "ready"):
        assert api_client.patch(f"/pitch-videos/{video['id']}/status", json={"status": step}).status_code == 200

    attached = api_client.post(f"/pages/watch/{page.id}/video", json={"pitchVideoId": video["id"]})
    assert attached.status_code == 200
    assert "cdn.test/raw.mp4" in attached.json()["html_content"]

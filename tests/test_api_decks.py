from funnel_builder.db.repositories.decks import DeckStructuresRepository

from conftest import OTHER_USER_ID, TEST_USER_ID


def _deck(db_session, project, user_id=TEST_USER_ID):
    slides = [
        {"slideNumber": 1, "title": "Welcome", "description": "", "section": "intro"},
        {"slideNumber": 2, "title": "The problem", "description": "", "section": "problem"},
    ]
    return DeckStructuresRepository(db_session).create(user_id=user_id, project_id=project.id, slides=slides)


def test_deck_repository_counts_slides(db_session, project):
    deck = _deck(db_session, project)
    assert deck.total_slides == 2
    assert deck.template_type == "55_slide_promo"


def test_list_and_update_deck_slides(api_client, db_session, project):
    deck = _deck(db_session, project)

    listed = api_client.get("/deck-structures", params={"projectId": project.id})
    assert listed.status_code == 200
    assert [item["id"] for item in listed.json()] == [deck.id]

    response = api_client.patch(
        f"/deck-structures/{deck.id}",
        json={
            "slides": [
                {"title": "The problem", "section": "problem"},
                {"title": "Welcome", "section": "intro"},
                {"title": "Offer", "section": "offer"},
            ]
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total_slides"] == 3
    assert [slide["slideNumber"] for slide in body["slides"]] == [1, 2, 3]
    assert body["sections"] == {"problem": 1, "intro": 1, "offer": 1}


def test_deck_of_another_user_is_hidden(api_client, db_session, other_project):
    foreign = _deck(db_session, other_project, user_id=OTHER_USER_ID)

    assert api_client.get(f"/deck-structures/{foreign.id}").status_code == 404
    assert api_client.delete(f"/deck-structures/{foreign.id}").status_code == 404

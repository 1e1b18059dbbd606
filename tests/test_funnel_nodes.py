from types import SimpleNamespace

import pytest

from funnel_builder.db.enums import FunnelNodeStatusEnum, FunnelNodeTypeEnum, PathwayTypeEnum
from funnel_builder.db.repositories.funnel_map import FunnelNodesRepository
from funnel_builder.services.funnel_nodes import (
    NodeField,
    calculate_approval_progress,
    calculate_field_completion,
    get_benchmark,
    get_node_definition,
    get_nodes_for_pathway,
    validate_draft_quality,
)

from conftest import TEST_USER_ID


def _ids(definitions):
    return [definition.node_type.value for definition in definitions]


def test_direct_purchase_pathway_skips_call_nodes():
    ids = _ids(get_nodes_for_pathway(PathwayTypeEnum.direct_purchase, {"access_type": "live"}))
    assert ids[0] == "traffic_source"
    assert ids[-1] == "thank_you"
    assert "call_booking" not in ids
    assert "sales_call" not in ids


def test_book_call_pathway_puts_call_before_checkout():
    ids = _ids(get_nodes_for_pathway(PathwayTypeEnum.book_call, {"access_type": "scheduled"}))
    assert ids.index("call_booking") < ids.index("sales_call") < ids.index("checkout")


@pytest.mark.parametrize(
    "config, visible",
    [
        (None, False),
        ({"access_type": "immediate"}, False),
        ({"access_type": "live"}, True),
        ({"access_type": "scheduled"}, True),
    ],
)
def test_confirmation_node_depends_on_access_type(config, visible):
    ids = _ids(get_nodes_for_pathway(PathwayTypeEnum.direct_purchase, config))
    assert ("registration_confirmation" in ids) is visible


def test_definition_payload_is_camel_cased():
    payload = get_node_definition(FunnelNodeTypeEnum.registration_confirmation).to_payload()
    assert payload["id"] == "registration_confirmation"
    assert payload["isConditional"] is True
    assert payload["fields"][0]["required"] is True


def test_benchmarks_prefer_pathway_specific_values():
    direct = get_benchmark(FunnelNodeTypeEnum.core_offer, PathwayTypeEnum.direct_purchase)
    call = get_benchmark(FunnelNodeTypeEnum.core_offer, PathwayTypeEnum.book_call)
    assert direct.median == 20
    assert call.median == 12
    assert get_benchmark(FunnelNodeTypeEnum.masterclass, PathwayTypeEnum.book_call).metric_name == "show_up_rate"
    assert get_benchmark(FunnelNodeTypeEnum.thank_you, PathwayTypeEnum.book_call) is None


def test_approval_progress_rounds_half_up():
    nodes = [SimpleNamespace(is_approved=flag) for flag in (True, False, False, False, False, False, False, False)]
    assert calculate_approval_progress(nodes) == {"approved": 1, "total": 8, "percentage": 13}
    assert calculate_approval_progress([]) == {"approved": 0, "total": 0, "percentage": 0}


def test_field_completion_ignores_blank_values():
    fields = [NodeField("a", "A"), NodeField("b", "B", "list"), NodeField("c", "C")]
    assert calculate_field_completion({"a": "x", "b": [], "c": "   "}, fields) == 33
    assert calculate_field_completion({"a": "x", "b": ["y"], "c": "z"}, fields) == 100
    assert calculate_field_completion({}, []) == 100


def test_draft_quality_flags_empty_short_and_placeholder_values():
    fields = [
        NodeField("headline", "Headline", required=True),
        NodeField("story", "Story", "textarea"),
        NodeField("cta", "CTA"),
    ]
    issues = validate_draft_quality({"headline": "", "story": "Short", "cta": "[Insert CTA]"}, fields)
    assert {(issue["field"], issue["issue"]) for issue in issues} == {
        ("headline", "empty"),
        ("story", "too_short"),
        ("cta", "placeholder"),
    }


def test_merge_conversation_shallow_merges_refined_content(db_session, project):
    repo = FunnelNodesRepository(db_session)
    first = repo.merge_conversation(
        project_id=project.id,
        user_id=TEST_USER_ID,
        node_type=FunnelNodeTypeEnum.core_offer,
        new_message={"role": "user", "content": "Make the headline punchier"},
        content_updates={"headline": "Old", "pricing": {"amount": 997, "currency": "USD"}},
    )
    assert first.status == FunnelNodeStatusEnum.in_progress

    node = repo.merge_conversation(
        project_id=project.id,
        user_id=TEST_USER_ID,
        node_type=FunnelNodeTypeEnum.core_offer,
        new_message={"role": "assistant", "content": "Done"},
        content_updates={"headline": "Scale in 90 days", "pricing": {"amount": 1497}},
    )

    assert node.id == first.id
    assert node.refined_content == {"headline": "Scale in 90 days", "pricing": {"amount": 1497}}
    assert [message["role"] for message in node.conversation_history] == ["user", "assistant"]


def test_merge_conversation_without_updates_keeps_content(db_session, project):
    repo = FunnelNodesRepository(db_session)
    repo.merge_conversation(
        project_id=project.id,
        user_id=TEST_USER_ID,
        node_type=FunnelNodeTypeEnum.core_offer,
        new_message={"role": "user", "content": "Hi"},
        content_updates={"headline": "Keep me"},
    )

    node = repo.merge_conversation(
        project_id=project.id,
        user_id=TEST_USER_ID,
        node_type=FunnelNodeTypeEnum.core_offer,
        new_message={"role": "user", "content": "Just chatting"},
    )

    assert node.refined_content == {"headline": "Keep me"}
    assert len(node.conversation_history) == 2

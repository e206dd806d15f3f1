import pytest

from errors import NotFoundError
from workflows import get_workflow, list_workflows, recommend_workflow


def test_list_workflows_summaries():
    summaries = {w["id"]: w for w in list_workflows()}
    assert set(summaries) == {"elon_tweets", "price_prediction", "political_event"}
    assert summaries["elon_tweets"]["steps_count"] == 5


def test_get_workflow_numbers_steps():
    wf = get_workflow("political_event")
    assert wf["id"] == "political_event"
    assert [s["step"] for s in wf["steps"]] == [1, 2, 3, 4, 5]


def test_unknown_workflow_lists_available():
    with pytest.raises(NotFoundError) as exc:
        get_workflow("astrology")
    assert sorted(exc.value.extra["available"]) == ["elon_tweets", "political_event", "price_prediction"]


@pytest.mark.parametrize(
    "question, expected",
    [
        ("Will Elon Musk tweet 500 times?", "elon_tweets"),
        ("Will Trump win the election?", "political_event"),
        ("Will the Senate pass the bill?", "political_event"),
        ("Will ETH close above $5k?", "price_prediction"),
        ("Will it snow in Paris?", "price_prediction"),
    ],
)
def test_recommend_workflow(question, expected):
    assert recommend_workflow(question) == expected

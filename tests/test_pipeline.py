import pytest

from fulfillment.core.errors import DownstreamServiceError, DownstreamServiceWarning, OrderNotFound
from fulfillment.services.pipeline import Outcome, Step, run_steps


def fail(ctx):
    raise RuntimeError("nope")


def test_steps_share_context():
    result = run_steps([
        Step("a", lambda ctx: 2),
        Step("b", lambda ctx: ctx["a"] * 10),
    ])
    assert result.context == {"a": 2, "b": 20}
    assert [s.outcome for s in result.steps] == [Outcome.OK, Outcome.OK]


def test_best_effort_failure_is_recorded_and_pipeline_continues():
    ran = []
    result = run_steps([
        Step("optional", fail, required=False),
        Step("after", lambda ctx: ran.append("after")),
    ])
    assert ran == ["after"]
    [warning] = result.warnings
    assert warning.name == "optional"
    assert warning.error == "optional failed: nope"
    assert "optional" not in result.context


def test_required_failure_aborts_and_wraps():
    ran = []
    with pytest.raises(DownstreamServiceError, match="critical failed: nope") as info:
        run_steps([
            Step("critical", fail),
            Step("after", lambda ctx: ran.append("after")),
        ])
    assert ran == []
    assert isinstance(info.value.__cause__, RuntimeError)


def test_required_domain_error_propagates_unchanged():
    def missing(ctx):
        raise OrderNotFound("o1")

    with pytest.raises(OrderNotFound):
        run_steps([Step("load", missing)])


def test_step_with_false_condition_is_skipped():
    ran = []
    result = run_steps([
        Step("a", lambda ctx: None),
        Step("email", lambda ctx: ran.append("email"), required=False, when=lambda ctx: False),
        Step("seller", lambda ctx: ran.append("seller"), when=lambda ctx: "a" in ctx),
    ])
    assert ran == ["seller"]
    assert result.outcome("email") is Outcome.SKIPPED
    assert result.outcome("seller") is Outcome.OK
    assert result.warnings == []
    assert "email" not in result.context


def test_warning_keeps_step_and_cause():
    cause = RuntimeError("smtp down")
    warning = DownstreamServiceWarning("send_email", cause)
    assert warning.message == "send_email failed: smtp down"
    assert warning.step == "send_email"
    assert warning.cause is cause
    assert "status_code" not in vars(DownstreamServiceWarning)

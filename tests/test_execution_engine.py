"""Tests for the DAG execution engine."""

import logging
import threading

import pytest

from dagflow.config import EngineConfig, LogLevel
from dagflow.core.exceptions import (
    AbortedError, CyclicGraphError, ExecutionEngineError, MalformedGraphError, NodeExecutionError
)
from dagflow.core.execution_context import AbortHandle
from dagflow.core.execution_engine import DAGExecutionEngine, raise_for_status
from dagflow.core.executor_registry import build_default_registry
from dagflow.core.logging import get_logging_context
from dagflow.executors import AUDIO_FAULT_MESSAGE, NodeExecutor
from dagflow.models.core import NodeKind, NodeStatus, ProviderConfig, RunStatus, SYSTEM_NODE_ID

from conftest import FailingProvider, RecordingProvider, make_edge, make_graph, make_node


def simple_graph():
    return make_graph(
        [make_node("a", "source_text", text="hello"), make_node("b", "output")],
        [make_edge("a", "b")]
    )


def cyclic_graph():
    return make_graph(
        [make_node("a", "transform"), make_node("b", "transform")],
        [make_edge("a", "b"), make_edge("b", "a")]
    )


def log_shape(result):
    return [(entry.node_id, entry.status) for entry in result.logs]


class TestExecutionBasics:
    """Test cases for a plain successful run."""

    def test_simple_run(self, engine):
        result = engine.execute(simple_graph())

        assert result.status == RunStatus.COMPLETED
        assert result.success
        assert result.outputs == {"a": "hello", "b": "hello"}
        assert result.node_status == {"a": NodeStatus.COMPLETED, "b": NodeStatus.COMPLETED}
        assert result.errors == {}

    def test_log_entries_in_execution_order(self, engine):
        result = engine.execute(simple_graph())

        assert log_shape(result) == [
            (SYSTEM_NODE_ID, NodeStatus.RUNNING),
            ("a", NodeStatus.RUNNING),
            ("a", NodeStatus.COMPLETED),
            ("b", NodeStatus.RUNNING),
            ("b", NodeStatus.COMPLETED),
            (SYSTEM_NODE_ID, NodeStatus.COMPLETED),
        ]
        assert result.execution_order == ["a", "b"]

    def test_timestamps_and_durations(self, engine):
        result = engine.execute(simple_graph())

        timestamps = [entry.timestamp for entry in result.logs]
        assert timestamps == sorted(timestamps)
        for entry in result.logs:
            if entry.node_id != SYSTEM_NODE_ID and entry.status == NodeStatus.COMPLETED:
                assert entry.duration_ms is not None
                assert entry.duration_ms >= 0
        assert result.total_duration_ms >= 0

    def test_llm_chain_uses_provider(self, engine, provider):
        graph = make_graph(
            [make_node("src", "source_text", text="Explain DAGs"),
             make_node("llm", "llm"),
             make_node("out", "output")],
            [make_edge("src", "llm"), make_edge("llm", "out")]
        )
        result = engine.execute(graph)

        assert result.outputs["out"] == "Mock LLM response"
        assert provider.calls[0]["messages"][-1].content == "Explain DAGs"

    def test_per_run_provider_config(self, engine, provider):
        graph = make_graph([make_node("llm", "llm")])
        engine.execute(graph, provider_config=ProviderConfig(model="run-model"))
        assert provider.calls[0]["config"].model == "run-model"

    def test_graph_is_not_mutated(self, engine):
        graph = simple_graph()
        before = graph.model_dump()
        engine.execute(graph)
        assert graph.model_dump() == before

    def test_each_run_starts_fresh(self, engine):
        first = engine.execute(simple_graph())
        second = engine.execute(simple_graph())
        assert first.run_id != second.run_id
        assert second.outputs == first.outputs

    def test_validate_without_running(self, engine, provider):
        result = engine.validate(cyclic_graph())
        assert not result.is_valid
        assert provider.calls == []


class TestGraphRejection:
    """Pre-run errors reject the run before any node executes."""

    def test_cycle_rejected_before_any_node_runs(self, engine, provider):
        entries = []
        engine.add_listener(entries.append)
        graph = make_graph(
            [make_node("src", "source_text", text="x"), make_node("llm", "llm"), make_node("t", "transform")],
            [make_edge("src", "llm"), make_edge("llm", "t"), make_edge("t", "llm")]
        )

        with pytest.raises(CyclicGraphError) as exc_info:
            engine.execute(graph)

        assert set(exc_info.value.cycle) == {"llm", "t"}
        assert entries == []
        assert provider.calls == []
        assert not engine.is_running

    def test_dangling_edge_rejected(self, engine):
        graph = make_graph([make_node("a", "source_text")], [make_edge("a", "missing")])
        with pytest.raises(MalformedGraphError):
            engine.execute(graph)
        assert not engine.is_running

    def test_background_run_surfaces_validation_error(self, engine):
        future = engine.start_execution(cyclic_graph())
        with pytest.raises(CyclicGraphError):
            future.result(timeout=5)


class TestDeterminism:
    """Test cases for reproducible scheduling."""

    def test_same_graph_same_order(self, engine):
        graph = make_graph(
            [make_node("r1", "source_text", text="one"), make_node("r2", "source_text", text="two"),
             make_node("merge", "output"), make_node("side", "transform", operation="uppercase")],
            [make_edge("r1", "merge"), make_edge("r2", "merge"), make_edge("r2", "side")]
        )
        first = engine.execute(graph)
        second = engine.execute(graph)

        assert first.execution_order == second.execution_order
        assert [entry.node_id for entry in first.logs] == [entry.node_id for entry in second.logs]
        assert first.outputs["merge"] == "one\n\n---\n\ntwo"


class TestFailureHandling:
    """Test cases for node failures and skip propagation."""

    @pytest.mark.parametrize("upstream", [None, "source_text", "llm"])
    def test_audio_stub_always_fails(self, engine, upstream):
        nodes = [make_node("audio", "audio_stub")]
        edges = []
        if upstream:
            nodes.insert(0, make_node("up", upstream, text="speak this"))
            edges.append(make_edge("up", "audio"))

        for _ in range(2):
            result = engine.execute(make_graph(nodes, edges))
            assert result.node_status["audio"] == NodeStatus.FAILED
            assert result.errors["audio"] == AUDIO_FAULT_MESSAGE
            failed = [entry for entry in result.logs if entry.node_id == "audio" and entry.status == NodeStatus.FAILED]
            assert failed[0].message == AUDIO_FAULT_MESSAGE

    def test_audio_stub_below_failed_node_is_skipped(self, engine):
        graph = make_graph(
            [make_node("src", "source_text", text="speak"),
             make_node("voice1", "audio_stub"),
             make_node("voice2", "audio_stub")],
            [make_edge("src", "voice1"), make_edge("voice1", "voice2")]
        )
        result = engine.execute(graph)

        assert result.node_status["voice1"] == NodeStatus.FAILED
        assert result.node_status["voice2"] == NodeStatus.SKIPPED
        assert "voice2" not in result.errors
        skipped = [entry for entry in result.logs if entry.node_id == "voice2"]
        assert [entry.status for entry in skipped] == [NodeStatus.SKIPPED]
        assert skipped[0].message == "Upstream node 'voice1' failed"

    def test_failure_isolated_to_its_branch(self, engine_config):
        engine = DAGExecutionEngine(provider=FailingProvider("API Error: 500 - boom"), config=engine_config)
        graph = make_graph(
            [make_node("A", "source_text", text="prompt"), make_node("B", "llm"), make_node("C", "output"),
             make_node("D", "source_text", text="independent"), make_node("E", "output")],
            [make_edge("A", "B"), make_edge("B", "C"), make_edge("D", "E")]
        )
        result = engine.execute(graph)

        assert result.node_status["B"] == NodeStatus.FAILED
        assert result.errors["B"] == "API Error: 500 - boom"
        assert result.node_status["C"] == NodeStatus.SKIPPED
        assert result.node_status["D"] == NodeStatus.COMPLETED
        assert result.node_status["E"] == NodeStatus.COMPLETED
        assert result.outputs["E"] == "independent"
        assert "C" not in result.outputs

        skipped = [entry for entry in result.logs if entry.node_id == "C"]
        assert [entry.status for entry in skipped] == [NodeStatus.SKIPPED]
        assert skipped[0].message == "Upstream node 'B' failed"

    def test_skip_propagates_transitively(self, engine):
        graph = make_graph(
            [make_node("a", "source_text", text="x"), make_node("b", "audio_stub"),
             make_node("c", "transform", operation="uppercase"), make_node("d", "output")],
            [make_edge("a", "b"), make_edge("b", "c"), make_edge("c", "d")]
        )
        result = engine.execute(graph)

        assert result.nodes_with_status(NodeStatus.SKIPPED) == ["c", "d"]
        d_entry = [entry for entry in result.logs if entry.node_id == "d"][0]
        assert d_entry.message == "Upstream node 'c' was skipped"

    def test_continue_on_error_runs_with_remaining_inputs(self, engine):
        graph = make_graph(
            [make_node("ok", "source_text", text="kept"), make_node("bad", "audio_stub"),
             make_node("sink", "output", continue_on_error=True)],
            [make_edge("ok", "sink"), make_edge("bad", "sink")]
        )
        result = engine.execute(graph)

        assert result.node_status["sink"] == NodeStatus.COMPLETED
        assert result.outputs["sink"] == "kept"

    def test_continue_on_error_without_any_input(self, engine):
        graph = make_graph(
            [make_node("bad", "audio_stub"),
             make_node("t", "transform", operation="uppercase", continue_on_error=True),
             make_node("sink", "output", continue_on_error=True)],
            [make_edge("bad", "t"), make_edge("bad", "sink")]
        )
        result = engine.execute(graph)

        assert result.node_status["t"] == NodeStatus.SKIPPED
        assert result.node_status["sink"] == NodeStatus.COMPLETED
        assert result.outputs["sink"] == ""

    def test_unexpected_executor_error_is_captured(self, engine_config, provider):
        class ExplodingTransform(NodeExecutor):
            kind = NodeKind.TRANSFORM

            def execute(self, node, inputs, context):
                raise RuntimeError("kaboom")

        registry = build_default_registry(provider)
        registry.register(ExplodingTransform(), replace=True)
        engine = DAGExecutionEngine(registry=registry, config=engine_config)

        result = engine.execute(make_graph([make_node("t", "transform"), make_node("out", "output")],
                                           [make_edge("t", "out")]))
        assert result.errors["t"] == "kaboom"
        assert result.node_status["out"] == NodeStatus.SKIPPED

    def test_missing_executor_fails_node(self, engine_config, provider):
        registry = build_default_registry(provider)
        registry.unregister(NodeKind.IMAGE_STUB)
        engine = DAGExecutionEngine(registry=registry, config=engine_config)

        result = engine.execute(make_graph([make_node("img", "image_stub")]))
        assert result.node_status["img"] == NodeStatus.FAILED
        assert "No executor registered" in result.errors["img"]


class TestRunStatusPolicy:
    """A run fails only when some node failed and no output node completed."""

    def test_failure_with_completed_output_is_completed(self, engine):
        graph = make_graph(
            [make_node("bad", "audio_stub"), make_node("src", "source_text", text="fine"), make_node("out", "output")],
            [make_edge("src", "out")]
        )
        result = engine.execute(graph)

        assert result.status == RunStatus.COMPLETED
        assert result.errors == {"bad": AUDIO_FAULT_MESSAGE}
        assert result.logs[-1].message == "Workflow execution completed"

    def test_failure_without_completed_output_is_failed(self, engine):
        graph = make_graph(
            [make_node("src", "source_text", text="say it"), make_node("voice", "audio_stub"), make_node("out", "output")],
            [make_edge("src", "voice"), make_edge("voice", "out")]
        )
        result = engine.execute(graph)

        assert result.status == RunStatus.FAILED
        assert not result.success
        assert result.logs[-1].node_id == SYSTEM_NODE_ID
        assert result.logs[-1].status == NodeStatus.FAILED
        assert result.logs[-1].message == "Workflow execution failed: 1 node(s) failed"

    def test_graph_without_output_nodes(self, engine):
        assert engine.execute(make_graph([make_node("voice", "audio_stub")])).status == RunStatus.FAILED
        assert engine.execute(make_graph([make_node("src", "source_text")])).status == RunStatus.COMPLETED

    def test_raise_for_status(self, engine):
        completed = engine.execute(simple_graph())
        assert raise_for_status(completed) is completed

        failed = engine.execute(make_graph([make_node("voice", "audio_stub")]))
        with pytest.raises(NodeExecutionError) as exc_info:
            raise_for_status(failed)
        assert AUDIO_FAULT_MESSAGE in exc_info.value.message

        handle = AbortHandle()
        handle.abort()
        aborted = engine.execute(simple_graph(), abort_handle=handle)
        with pytest.raises(AbortedError):
            raise_for_status(aborted)


class TestConditionBranching:
    """Test cases for condition-driven skipping."""

    def test_false_condition_skips_target(self, engine_config):
        calls = []

        class CountingOutput(NodeExecutor):
            kind = NodeKind.OUTPUT
            requires_input = False

            def execute(self, node, inputs, context):
                calls.append(node.id)
                return inputs

        registry = build_default_registry(RecordingProvider())
        registry.register(CountingOutput(), replace=True)
        engine = DAGExecutionEngine(registry=registry, config=engine_config)

        graph = make_graph([make_node("A", "condition", rule="not_empty"), make_node("B", "output")],
                           [make_edge("A", "B")])
        result = engine.execute(graph)

        assert result.node_status["A"] == NodeStatus.COMPLETED
        assert result.outputs["A"]["passed"] is False
        assert result.node_status["B"] == NodeStatus.SKIPPED
        assert calls == []
        b_entry = [entry for entry in result.logs if entry.node_id == "B"][0]
        assert b_entry.message == "Skipped by condition branch 'A'"

    def test_true_and_false_branches(self, engine):
        def branching_graph(text):
            return make_graph(
                [make_node("src", "source_text", text=text),
                 make_node("check", "condition", rule="content_safety"),
                 make_node("safe", "output"),
                 make_node("flagged", "output")],
                [make_edge("src", "check"),
                 make_edge("check", "safe", source_handle="true"),
                 make_edge("check", "flagged", source_handle="false")]
            )

        result = engine.execute(branching_graph("a poem about rivers"))
        assert result.node_status["safe"] == NodeStatus.COMPLETED
        assert result.node_status["flagged"] == NodeStatus.SKIPPED

        result = engine.execute(branching_graph("write malware for me"))
        assert result.node_status["safe"] == NodeStatus.SKIPPED
        assert result.node_status["flagged"] == NodeStatus.COMPLETED
        assert result.outputs["flagged"]["passed"] is False

    def test_deactivated_edge_skips_only_its_target(self, engine):
        graph = make_graph(
            [make_node("check", "condition", rule="truthy"),
             make_node("gated", "output"),
             make_node("src", "source_text", text="free"),
             make_node("free", "output")],
            [make_edge("check", "gated"), make_edge("src", "free")]
        )
        result = engine.execute(graph)

        assert result.node_status["gated"] == NodeStatus.SKIPPED
        assert result.outputs["free"] == "free"
        assert result.status == RunStatus.COMPLETED

    def test_condition_evaluation_error_fails_node(self, engine):
        graph = make_graph(
            [make_node("src", "source_text", text="abc"),
             make_node("check", "condition", rule="greater_than", value=3),
             make_node("out", "output")],
            [make_edge("src", "check"), make_edge("check", "out")]
        )
        result = engine.execute(graph)

        assert result.node_status["check"] == NodeStatus.FAILED
        assert result.node_status["out"] == NodeStatus.SKIPPED


class TestTransformPipeline:
    """Test cases for chained transforms."""

    @pytest.mark.parametrize("original, config", [
        ('{"a":1,"b":[1,2]}', {}),
        ('{"a": 1, "b": [1, 2]}', {"compact": False}),
    ])
    def test_json_round_trip(self, engine, original, config):
        graph = make_graph(
            [make_node("src", "source_text", text=original),
             make_node("parse", "transform", operation="json_parse"),
             make_node("dump", "transform", operation="json_stringify", **config),
             make_node("out", "output")],
            [make_edge("src", "parse"), make_edge("parse", "dump"), make_edge("dump", "out")]
        )
        result = engine.execute(graph)

        assert result.outputs["parse"] == {"a": 1, "b": [1, 2]}
        assert result.outputs["dump"] == original
        assert result.outputs["out"] == original

    def test_type_mismatch_fails_node(self, engine):
        graph = make_graph(
            [make_node("src", "source_text", text='{"a": 1}'),
             make_node("parse", "transform", operation="json_parse"),
             make_node("upper", "transform", operation="uppercase")],
            [make_edge("src", "parse"), make_edge("parse", "upper")]
        )
        result = engine.execute(graph)

        assert result.node_status["upper"] == NodeStatus.FAILED
        assert "expects text input" in result.errors["upper"]


class TestAbort:
    """Test cases for cooperative abort."""

    def test_abort_while_node_in_flight(self, engine_config):
        engine = None

        def aborting_provider(messages, config):
            engine.abort_execution()
            return "finished anyway"

        engine = DAGExecutionEngine(provider=aborting_provider, config=engine_config)
        graph = make_graph(
            [make_node("n1", "source_text", text="go"), make_node("n2", "llm"), make_node("n3", "output")],
            [make_edge("n1", "n2"), make_edge("n2", "n3")]
        )
        result = engine.execute(graph)

        assert result.status == RunStatus.ABORTED
        assert result.node_status["n1"] == NodeStatus.COMPLETED
        assert result.node_status["n2"] == NodeStatus.COMPLETED
        assert result.outputs["n2"] == "finished anyway"
        assert result.node_status["n3"] == NodeStatus.SKIPPED
        assert [entry.message for entry in result.logs if entry.node_id == "n3"] == ["Execution aborted"]
        assert result.logs[-1].node_id == SYSTEM_NODE_ID
        assert result.logs[-1].message == "Execution aborted"

    def test_abort_during_last_node(self, engine_config):
        engine = None

        def aborting_provider(messages, config):
            engine.abort_execution()
            return "done"

        engine = DAGExecutionEngine(provider=aborting_provider, config=engine_config)
        result = engine.execute(make_graph([make_node("only", "llm")]))

        assert result.status == RunStatus.ABORTED
        assert result.node_status["only"] == NodeStatus.COMPLETED

    def test_abort_handle_set_before_start(self, engine, provider):
        handle = AbortHandle()
        handle.abort()
        result = engine.execute(simple_graph(), abort_handle=handle)

        assert result.status == RunStatus.ABORTED
        assert result.node_status == {"a": NodeStatus.SKIPPED, "b": NodeStatus.SKIPPED}
        assert result.outputs == {}

    def test_background_run_abort(self, engine_config):
        entered = threading.Event()
        release = threading.Event()

        def slow_provider(messages, config):
            entered.set()
            release.wait(5)
            return "slow reply"

        engine = DAGExecutionEngine(provider=slow_provider, config=engine_config)
        graph = make_graph(
            [make_node("n1", "source_text", text="go"), make_node("n2", "llm"), make_node("n3", "output")],
            [make_edge("n1", "n2"), make_edge("n2", "n3")]
        )
        try:
            future = engine.start_execution(graph)
            assert entered.wait(5)
            assert engine.is_running

            with pytest.raises(ExecutionEngineError):
                engine.execute(simple_graph())

            engine.abort_execution()
            engine.abort_execution()
            release.set()
            result = future.result(timeout=5)
        finally:
            release.set()
            engine.shutdown()

        assert result.status == RunStatus.ABORTED
        assert result.node_status["n1"] == NodeStatus.COMPLETED
        assert result.node_status["n2"] == NodeStatus.COMPLETED
        assert result.node_status["n3"] == NodeStatus.SKIPPED
        assert not engine.is_running

    def test_abort_after_completion_is_noop(self, engine):
        result = engine.execute(simple_graph())
        snapshot = result.model_dump()

        engine.abort_execution()
        engine.abort_execution()

        assert result.model_dump() == snapshot
        assert engine.execute(simple_graph()).status == RunStatus.COMPLETED

    def test_abort_without_run_is_noop(self, engine):
        engine.abort_execution()
        assert not engine.is_running


class TestRunLoggingContext:
    """Log records carry the run id of the run that produced them."""

    def test_concurrent_engines_keep_their_run_ids(self, engine_config, caplog):
        caplog.set_level(logging.INFO, logger="dagflow.core.execution_engine")
        entered = threading.Event()
        release = threading.Event()

        def blocking_provider(messages, config):
            entered.set()
            release.wait(5)
            return "late reply"

        slow_engine = DAGExecutionEngine(provider=blocking_provider, config=engine_config)
        fast_engine = DAGExecutionEngine(provider=RecordingProvider(), config=engine_config)
        try:
            future = slow_engine.start_execution(make_graph([make_node("llm", "llm")]))
            assert entered.wait(5)

            fast_result = fast_engine.execute(simple_graph())
            release.set()
            slow_result = future.result(timeout=5)
        finally:
            release.set()
            slow_engine.shutdown()

        def finish_record(run_id):
            records = [record for record in caplog.records
                       if record.getMessage().startswith(f"Run {run_id} finished")]
            assert len(records) == 1
            return records[0]

        assert finish_record(slow_result.run_id).extra_fields["run_id"] == slow_result.run_id
        assert finish_record(fast_result.run_id).extra_fields["run_id"] == fast_result.run_id

    def test_context_cleared_after_run(self, engine):
        engine.execute(simple_graph())
        assert get_logging_context() == {}


class TestProgressListeners:
    """Test cases for incremental log delivery."""

    def test_listener_receives_every_entry(self, engine):
        received = []
        engine.add_listener(received.append)
        result = engine.execute(simple_graph())
        assert received == result.logs

    def test_constructor_callback(self, engine_config, provider):
        received = []
        engine = DAGExecutionEngine(provider=provider, config=engine_config, on_progress=received.append)
        engine.execute(simple_graph())
        assert received[0].node_id == SYSTEM_NODE_ID

    def test_removed_listener_is_not_called(self, engine):
        received = []
        engine.add_listener(received.append)
        engine.remove_listener(received.append)
        engine.execute(simple_graph())
        assert received == []

    def test_failing_listener_does_not_break_run(self, engine):
        def broken(entry):
            raise RuntimeError("listener bug")

        engine.add_listener(broken)
        assert engine.execute(simple_graph()).status == RunStatus.COMPLETED

    def test_long_output_truncated_in_log_only(self, provider):
        config = EngineConfig(log_level=LogLevel.WARNING, log_output_max_chars=10)
        engine = DAGExecutionEngine(provider=provider, config=config)
        text = "x" * 50
        result = engine.execute(make_graph([make_node("src", "source_text", text=text)]))

        completed = [entry for entry in result.logs if entry.node_id == "src" and entry.status == NodeStatus.COMPLETED]
        assert completed[0].output == "x" * 10 + "..."
        assert result.outputs["src"] == text


class TestEmptyGraph:
    """Test cases for graphs without nodes."""

    def test_empty_graph_completes_immediately(self, engine, provider):
        result = engine.execute(make_graph([]))

        assert result.status == RunStatus.COMPLETED
        assert result.outputs == {}
        assert len(result.logs) <= 1
        assert result.logs[0].node_id == SYSTEM_NODE_ID
        assert result.logs[0].message == "No nodes to execute"
        assert provider.calls == []

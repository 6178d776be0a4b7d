"""Example workflow demonstrating the DAG engine capabilities."""

from dagflow import DAGExecutionEngine, Edge, Graph, Node, NodeKind, NodeStatus
from dagflow.config import load_config
from dagflow.core.logging import setup_logging
from dagflow.providers import check_connection


def create_moderation_workflow() -> Graph:
    """
    Create an example moderation workflow that demonstrates the engine's capabilities.

    This workflow:
    1. Takes a user prompt
    2. Checks it for risky keywords
    3. Forwards safe prompts to an LLM and normalizes the reply
    4. Routes flagged prompts to a rejection sink
    5. Tries to read the answer aloud (the audio subsystem is always down)
    """
    nodes = [
        Node(id="prompt", kind=NodeKind.SOURCE_TEXT, label="User prompt",
             config={"text": "Explain how a topological sort works in two sentences."}),
        Node(id="safety", kind=NodeKind.CONDITION, label="Safety check",
             config={"rule": "content_safety"}),
        Node(id="compose", kind=NodeKind.TRANSFORM, label="Forward prompt",
             config={"operation": "template", "template": "{{prompt}}"}),
        Node(id="answer", kind=NodeKind.LLM, label="Answer",
             config={"system_prompt": "You are a concise computer science tutor."}),
        Node(id="tidy", kind=NodeKind.TRANSFORM, label="Trim reply",
             config={"operation": "trim"}),
        Node(id="voice", kind=NodeKind.AUDIO_STUB, label="Read aloud"),
        Node(id="result", kind=NodeKind.OUTPUT, label="Answer sink"),
        Node(id="rejected", kind=NodeKind.OUTPUT, label="Rejection sink"),
    ]

    edges = [
        Edge(id="e1", source="prompt", target="safety"),
        Edge(id="e2", source="safety", target="compose", source_handle="true"),
        Edge(id="e3", source="safety", target="rejected", source_handle="false"),
        Edge(id="e4", source="prompt", target="compose"),
        Edge(id="e5", source="compose", target="answer"),
        Edge(id="e6", source="answer", target="tidy"),
        Edge(id="e7", source="tidy", target="result"),
        Edge(id="e8", source="tidy", target="voice"),
    ]

    return Graph(nodes=nodes, edges=edges)


def offline_provider(messages, config):
    """Stand-in completion provider used when no LLM server is reachable."""
    return f"  [offline reply from {config.model}] {messages[-1].content}  "


def main():
    """Run the example workflow and print its execution log."""
    config = load_config()
    setup_logging(level=config.log_level.value, structured=config.structured_logging)

    provider = None
    probe = check_connection(config.provider_config())
    if not probe["success"]:
        print(f"⚠️  LLM provider unreachable ({probe['message']}), using offline replies")
        provider = offline_provider

    engine = DAGExecutionEngine(provider=provider, config=config)
    workflow = create_moderation_workflow()

    print("🔧 DAG Engine - Example Workflow")
    print("=" * 50)
    validation = engine.validate(workflow)
    for warning in validation.warnings:
        print(f"  ⚠️  {warning}")

    result = engine.execute(workflow)

    print("📋 Execution Log:")
    for entry in result.logs:
        message = entry.message or ""
        if entry.status == NodeStatus.COMPLETED and entry.output is not None:
            message = f"{message} {entry.output}".strip()
        print(f"  • [{entry.status.value:>9}] {entry.node_id}: {message}")
    print()

    print(f"Run {result.run_id} finished with status: {result.status.value}")
    print(f"Total duration: {result.total_duration_ms:.1f}ms")
    if result.errors:
        print("❌ Failed nodes:")
        for node_id, error in result.errors.items():
            print(f"  • {node_id}: {error}")

    engine.shutdown()


if __name__ == "__main__":
    main()

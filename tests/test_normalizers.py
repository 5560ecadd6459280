"""Tests for deeptrace.ingest.normalizers — sniffing, per-format mapping, backfill."""

import copy
import json

import pytest

from deeptrace.ingest.normalizers import (
    backfill_tool_names,
    normalize_entries,
    normalize_record,
    sniff_format,
    sort_chronologically,
)
from deeptrace.ingest.records import TranscriptFormat


def _roles(messages):
    return [m["message"]["role"] for m in messages]


CLAUDE_EXAMPLE = [
    {"type": "user", "message": {"role": "user", "content": "fix the bug"}},
    {"type": "assistant", "message": {"role": "assistant", "content": [
        {"type": "tool_use", "id": "t1", "name": "Bash", "input": {}},
    ]}},
    {"type": "user", "message": {"role": "user", "content": [
        {"type": "tool_result", "tool_use_id": "t1", "content": "done"},
    ]}},
]


# ── Sniffing ─────────────────────────────────────────────────────────────────


class TestSniffFormat:
    def test_claude(self):
        assert sniff_format(CLAUDE_EXAMPLE) == TranscriptFormat.CLAUDE

    def test_claude_metadata_only(self):
        records = [{"type": "file-history-snapshot", "snapshot": {}}]
        assert sniff_format(records) == TranscriptFormat.CLAUDE

    def test_codex(self):
        records = [{"type": "session_meta", "payload": {"id": "x"}}]
        assert sniff_format(records) == TranscriptFormat.CODEX

    def test_copilot(self):
        records = [{"type": "session.start", "data": {"sessionId": "s"}}]
        assert sniff_format(records) == TranscriptFormat.COPILOT

    def test_kimi_think_blocks_win_over_claude(self):
        records = [
            {"type": "user", "message": {"role": "user", "content": "hi"}},
            {"type": "assistant", "message": {"role": "assistant", "content": [
                {"type": "think", "think": "hmm"}, {"type": "text", "text": "hello"},
            ]}},
        ]
        assert sniff_format(records) == TranscriptFormat.KIMI

    def test_kova(self):
        records = [
            {"type": "session", "id": "abc"},
            {"type": "message", "message": {"role": "user", "content": [{"type": "text", "text": "hi"}]}},
        ]
        assert sniff_format(records) == TranscriptFormat.KOVA

    def test_chat(self):
        records = [{"type": "message", "role": "user", "content": "hi"}]
        assert sniff_format(records) == TranscriptFormat.CHAT

    def test_kimi_context(self):
        records = [{"role": "_checkpoint", "id": 0}, {"role": "user", "content": "hi"}]
        assert sniff_format(records) == TranscriptFormat.KIMI_CONTEXT

    def test_fallback(self):
        assert sniff_format([]) == TranscriptFormat.CHAT
        assert sniff_format([42, "x"]) == TranscriptFormat.CHAT

    def test_only_first_records_are_sampled(self):
        filler = [{"type": "unknown"}] * 30
        records = filler + [{"type": "session_meta", "payload": {}}]
        assert sniff_format(records) == TranscriptFormat.CHAT


# ── Claude ───────────────────────────────────────────────────────────────────


class TestClaude:
    def test_three_line_example(self):
        msgs = normalize_entries(CLAUDE_EXAMPLE)
        assert len(msgs) == 3
        assert _roles(msgs) == ["user", "assistant", "toolResult"]
        assert msgs[0]["message"]["content"] == [{"type": "text", "text": "fix the bug"}]
        assert msgs[1]["message"]["content"] == [
            {"type": "tool_use", "id": "t1", "name": "Bash", "input": {}},
        ]
        result = msgs[2]["message"]
        assert result["toolCallId"] == "t1"
        assert result["toolName"] == "Bash"
        assert result["content"] == [{"type": "text", "text": "done"}]

    def test_normalization_is_idempotent(self):
        original = copy.deepcopy(CLAUDE_EXAMPLE)
        first = normalize_entries(CLAUDE_EXAMPLE)
        second = normalize_entries(CLAUDE_EXAMPLE)
        assert first == second
        assert CLAUDE_EXAMPLE == original

    def test_text_emitted_before_tool_results(self):
        record = {"type": "user", "timestamp": "2025-01-01T10:00:00Z", "message": {"role": "user", "content": [
            {"type": "tool_result", "tool_use_id": "a", "content": [{"type": "text", "text": "one"}]},
            {"type": "text", "text": "and also"},
            {"type": "tool_result", "tool_use_id": "b", "content": "two", "is_error": True},
        ]}}
        out = normalize_record(record, TranscriptFormat.CLAUDE)
        assert isinstance(out, list)
        assert _roles(out) == ["user", "toolResult", "toolResult"]
        assert out[0]["message"]["content"] == [{"type": "text", "text": "and also"}]
        assert out[1]["message"]["toolCallId"] == "a"
        assert out[1]["message"]["content"] == [{"type": "text", "text": "one"}]
        assert out[2]["message"]["isError"] is True
        assert all(m["timestamp"] == "2025-01-01T10:00:00Z" for m in out)

    def test_bookkeeping_records_are_skipped(self):
        for rtype in ("progress", "queue-operation", "system", "summary", "file-history-snapshot"):
            assert normalize_record({"type": rtype, "message": {}}, TranscriptFormat.CLAUDE) is None

    def test_team_and_sidechain_carried(self):
        record = {
            "type": "assistant", "teamName": "alpha", "isSidechain": True,
            "message": {"role": "assistant", "content": [{"type": "text", "text": "ok"}]},
        }
        out = normalize_record(record, TranscriptFormat.CLAUDE)
        assert out["teamName"] == "alpha"
        assert out["isSidechain"] is True

    def test_thinking_blocks(self):
        record = {"type": "assistant", "message": {"role": "assistant", "content": [
            {"type": "thinking", "thinking": "let me see"},
            {"type": "redacted_thinking", "data": "xxx"},
            {"type": "text", "text": "answer"},
        ]}}
        content = normalize_record(record, TranscriptFormat.CLAUDE)["message"]["content"]
        assert content == [
            {"type": "thinking", "thinking": "let me see"},
            {"type": "thinking", "thinking": "[redacted]"},
            {"type": "text", "text": "answer"},
        ]


# ── Codex ────────────────────────────────────────────────────────────────────


class TestCodex:
    RECORDS = [
        {"type": "session_meta", "payload": {"id": "cx-1", "cwd": "/work"}},
        {"type": "response_item", "payload": {"type": "message", "role": "developer",
                                              "content": [{"type": "input_text", "text": "rules"}]}},
        {"type": "response_item", "timestamp": "2025-01-01T10:00:00Z",
         "payload": {"type": "message", "role": "user",
                     "content": [{"type": "input_text", "text": "list files"}]}},
        {"type": "response_item", "payload": {"type": "reasoning",
                                              "summary": [{"type": "summary_text", "text": "use ls"}]}},
        {"type": "response_item", "payload": {"type": "function_call", "name": "shell",
                                              "call_id": "c1", "arguments": "{\"cmd\": \"ls\"}"}},
        {"type": "response_item", "payload": {"type": "function_call_output", "call_id": "c1",
                                              "output": "a.txt"}},
        {"type": "response_item", "payload": {"type": "custom_tool_call", "name": "apply_patch",
                                              "call_id": "c2", "input": "*** Begin Patch"}},
        {"type": "event_msg", "payload": {"type": "token_count"}},
    ]

    def test_mapping(self):
        msgs = normalize_entries(self.RECORDS)
        assert _roles(msgs) == ["user", "assistant", "assistant", "toolResult", "assistant"]
        assert msgs[0]["message"]["content"] == [{"type": "text", "text": "list files"}]
        assert msgs[1]["message"]["content"] == [{"type": "thinking", "thinking": "use ls"}]
        assert msgs[2]["message"]["content"][0] == {
            "type": "tool_use", "id": "c1", "name": "shell", "input": {"cmd": "ls"},
        }
        assert msgs[3]["message"]["toolCallId"] == "c1"
        assert msgs[3]["message"]["toolName"] == "shell"

    def test_unparseable_arguments_kept_raw(self):
        msgs = normalize_entries(self.RECORDS)
        assert msgs[4]["message"]["content"][0]["input"] == {"raw": "*** Begin Patch"}

    def test_reasoning_without_summary(self):
        record = {"type": "response_item", "payload": {"type": "reasoning", "summary": []}}
        assert normalize_record(record, TranscriptFormat.CODEX) is None


# ── Kimi ─────────────────────────────────────────────────────────────────────


class TestKimi:
    def test_wrapped_think_and_text(self):
        records = [
            {"type": "user", "message": {"role": "user", "content": "hi"}},
            {"type": "assistant", "message": {"role": "assistant", "content": [
                {"type": "think", "think": "hmm"}, {"type": "text", "text": "hello"},
            ]}},
            {"type": "assistant", "message": {"role": "assistant", "content": [{"type": "text", "text": "  "}]}},
        ]
        msgs = normalize_entries(records)
        assert len(msgs) == 2
        assert msgs[1]["message"]["content"] == [
            {"type": "thinking", "thinking": "hmm"},
            {"type": "text", "text": "hello"},
        ]

    def test_context_lines(self):
        records = [
            {"role": "_checkpoint", "id": 0},
            {"role": "user", "content": "list"},
            {"role": "assistant", "content": "", "tool_calls": [
                {"id": "tc1", "type": "function",
                 "function": {"name": "Shell", "arguments": "{\"command\": \"ls\"}"}},
            ]},
            {"role": "tool", "content": "a.txt", "tool_call_id": "tc1"},
            {"role": "_usage", "token_count": 10},
        ]
        msgs = normalize_entries(records)
        assert _roles(msgs) == ["user", "assistant", "toolResult"]
        assert msgs[1]["message"]["content"] == [
            {"type": "tool_use", "id": "tc1", "name": "Shell", "input": {"command": "ls"}},
        ]
        assert msgs[2]["message"]["toolCallId"] == "tc1"
        assert msgs[2]["message"]["toolName"] == "Shell"


# ── OpenClaw / chat ──────────────────────────────────────────────────────────


class TestKova:
    def test_tool_call_and_result(self):
        records = [
            {"type": "session", "id": "s1"},
            {"type": "message", "timestamp": 1700000000000, "message": {"role": "assistant", "content": [
                {"type": "toolCall", "id": "abc", "name": "Read", "arguments": {"path": "x"}},
            ]}},
            {"type": "message", "message": {"role": "toolResult", "toolCallId": "abc", "isError": False,
                                            "content": [{"type": "text", "text": "ok"}]}},
        ]
        msgs = normalize_entries(records)
        assert len(msgs) == 2
        assert msgs[0]["timestamp"] == "2023-11-14T22:13:20.000Z"
        assert msgs[0]["message"]["content"][0]["input"] == {"path": "x"}
        assert msgs[1]["message"]["toolName"] == "Read"
        assert msgs[1]["message"]["isError"] is False

    def test_unknown_block_is_stringified(self):
        block = {"type": "weird", "value": 1}
        record = {"type": "message", "message": {"role": "assistant", "content": [block]}}
        out = normalize_record(record, TranscriptFormat.KOVA)
        assert out["message"]["content"] == [
            {"type": "text", "text": json.dumps(block, ensure_ascii=False)},
        ]

    def test_image_placeholder(self):
        record = {"type": "message", "message": {"role": "user", "content": [
            {"type": "image", "data": "...", "mimeType": "image/png"},
        ]}}
        out = normalize_record(record, TranscriptFormat.KOVA)
        assert out["message"]["content"] == [{"type": "text", "text": "[image]"}]


class TestChat:
    def test_model_role_maps_to_assistant(self):
        out = normalize_record({"role": "model", "content": "hi"}, TranscriptFormat.CHAT)
        assert out["message"]["role"] == "assistant"
        assert out["message"]["content"] == [{"type": "text", "text": "hi"}]

    @pytest.mark.parametrize("role", ["developer", "system"])
    def test_internal_roles_filtered(self, role):
        assert normalize_record({"role": role, "content": "x"}, TranscriptFormat.CHAT) is None

    def test_missing_content(self):
        assert normalize_record({"role": "user"}, TranscriptFormat.CHAT) is None

    def test_wrapped_message(self):
        record = {"message": {"role": "user", "content": "hello"}, "contextItems": []}
        out = normalize_record(record, TranscriptFormat.CHAT)
        assert out["message"]["content"] == [{"type": "text", "text": "hello"}]

    def test_tool_role(self):
        out = normalize_record({"role": "tool", "content": "out", "tool_call_id": "x"}, TranscriptFormat.CHAT)
        assert out["message"]["role"] == "toolResult"
        assert out["message"]["toolCallId"] == "x"


# ── Copilot / Gemini ─────────────────────────────────────────────────────────


class TestCopilot:
    def test_events(self):
        records = [
            {"type": "session.start", "data": {"sessionId": "cp-1"}},
            {"type": "user.message", "timestamp": "2025-01-01T10:00:00Z", "data": {"content": "read a"}},
            {"type": "assistant.turn_start", "data": {}},
            {"type": "assistant.message", "data": {"content": "", "toolRequests": [
                {"toolCallId": "r1", "name": "view", "arguments": {"path": "a"}},
            ]}},
            {"type": "tool.execution_complete", "data": {
                "toolCallId": "r1", "success": False, "result": {"content": "boom"},
            }},
        ]
        msgs = normalize_entries(records)
        assert _roles(msgs) == ["user", "assistant", "toolResult"]
        assert msgs[1]["message"]["content"] == [
            {"type": "tool_use", "id": "r1", "name": "view", "input": {"path": "a"}},
        ]
        assert msgs[2]["message"]["isError"] is True
        assert msgs[2]["message"]["toolName"] == "view"
        assert msgs[2]["message"]["content"] == [{"type": "text", "text": "boom"}]


class TestGemini:
    def test_assistant_with_thoughts_and_tools(self):
        record = {
            "type": "gemini", "timestamp": "2025-01-01T10:00:00Z", "content": "done",
            "thoughts": [{"subject": "Plan", "description": "read file"}],
            "toolCalls": [{"id": "g1", "name": "read_file", "args": {"path": "a"},
                           "status": "success", "resultDisplay": "contents"}],
        }
        out = normalize_record(record, TranscriptFormat.GEMINI)
        assert isinstance(out, list) and len(out) == 2
        assert out[0]["message"]["content"] == [
            {"type": "thinking", "thinking": "Plan: read file"},
            {"type": "text", "text": "done"},
            {"type": "tool_use", "id": "g1", "name": "read_file", "input": {"path": "a"}},
        ]
        assert out[1]["message"]["toolCallId"] == "g1"
        assert out[1]["message"]["isError"] is False
        assert out[1]["message"]["content"] == [{"type": "text", "text": "contents"}]

    def test_function_response_output(self):
        record = {"type": "gemini", "content": "", "toolCalls": [{
            "id": "g2", "name": "shell", "args": {}, "status": "error",
            "result": [{"functionResponse": {"id": "g2", "response": {"output": "denied"}}}],
        }]}
        out = normalize_record(record, TranscriptFormat.GEMINI)
        assert out[1]["message"]["content"] == [{"type": "text", "text": "denied"}]
        assert out[1]["message"]["isError"] is True

    @pytest.mark.parametrize("rtype", ["info", "error", "warning"])
    def test_status_messages_skipped(self, rtype):
        assert normalize_record({"type": rtype, "content": "x"}, TranscriptFormat.GEMINI) is None


# ── Transcript passes ────────────────────────────────────────────────────────


class TestBackfill:
    def test_result_logged_before_invocation(self):
        messages = [
            {"type": "message", "message": {"role": "toolResult", "toolCallId": "abc", "content": []}},
            {"type": "message", "message": {"role": "assistant", "content": [
                {"type": "tool_use", "id": "abc", "name": "Read", "input": {}},
            ]}},
        ]
        backfill_tool_names(messages)
        assert messages[0]["message"]["toolName"] == "Read"

    def test_existing_name_kept_and_unknown_left_alone(self):
        messages = [
            {"type": "message", "message": {"role": "assistant", "content": [
                {"type": "tool_use", "id": "a", "name": "Read", "input": {}},
            ]}},
            {"type": "message", "message": {"role": "toolResult", "toolCallId": "a", "toolName": "Custom",
                                            "content": []}},
            {"type": "message", "message": {"role": "toolResult", "toolCallId": "zzz", "content": []}},
        ]
        backfill_tool_names(messages)
        assert messages[1]["message"]["toolName"] == "Custom"
        assert "toolName" not in messages[2]["message"]


class TestSortChronologically:
    def test_missing_timestamps_first_and_stable(self):
        msgs = [
            {"id": 1, "timestamp": "2025-01-01T10:00:02Z"},
            {"id": 2},
            {"id": 3, "timestamp": "2025-01-01T10:00:01Z"},
            {"id": 4},
            {"id": 5, "timestamp": "2025-01-01T10:00:01Z"},
        ]
        assert [m["id"] for m in sort_chronologically(msgs)] == [2, 4, 3, 5, 1]

"""Tests for batch normalization of invoice markdown."""

import json

import pytest

from invoicer.services.errors import MalformedOutputError, OutputValidationError
from invoicer.services.normalizer import InvoiceNormalizer, chunked
from invoicer.services.prompts import STRICT_ARRAY_SUFFIX, STRICT_OBJECT_SUFFIX

from conftest import FakeCompletionClient, make_output, prompt_markdowns


def _echo_batch(user_prompt: str) -> str:
    """Reply with one valid invoice per markdown, numbered after the markdown text."""
    return json.dumps([make_output(markdown) for markdown in prompt_markdowns(user_prompt)])


def test_chunked_preserves_order_and_sizes():
    assert list(chunked(["a", "b", "c", "d", "e"], 2)) == [["a", "b"], ["c", "d"], ["e"]]


def test_chunked_rejects_zero_size():
    with pytest.raises(ValueError):
        list(chunked(["a"], 0))


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        InvoiceNormalizer(FakeCompletionClient(), batch_size=0, system_prompt="SYS")


def test_normalize_single_returns_validated_object():
    client = FakeCompletionClient(replies=["```json\n" + json.dumps(make_output("INV-1")) + "\n```"])
    normalizer = InvoiceNormalizer(client, system_prompt="SYS")

    output = normalizer.normalize("# Invoice INV-1")

    assert output["invoice"]["invoice_number"] == "INV-1"
    assert len(client.calls) == 1
    system, user = client.calls[0]
    assert system == "SYS"
    assert prompt_markdowns(user) == ["# Invoice INV-1"]


def test_normalize_retries_once_with_strict_suffix():
    client = FakeCompletionClient(replies=["Sorry, I cannot help with that.", json.dumps(make_output("INV-1"))])
    normalizer = InvoiceNormalizer(client, system_prompt="SYS")

    output = normalizer.normalize("# Invoice")

    assert output["invoice"]["invoice_number"] == "INV-1"
    assert len(client.calls) == 2
    assert client.calls[1][1].endswith(STRICT_OBJECT_SUFFIX)


def test_normalize_raises_malformed_after_second_failure():
    client = FakeCompletionClient(replies=["not json", "still not json"])
    normalizer = InvoiceNormalizer(client, system_prompt="SYS")

    with pytest.raises(MalformedOutputError) as exc_info:
        normalizer.normalize("# Invoice")

    assert len(client.calls) == 2
    assert "still not json" in exc_info.value.preview


def test_normalize_rejects_array_reply_for_single_invoice():
    client = FakeCompletionClient(replies=["[1, 2]", "[3]"])
    normalizer = InvoiceNormalizer(client, system_prompt="SYS")

    with pytest.raises(MalformedOutputError):
        normalizer.normalize("# Invoice")


def test_validation_failure_is_not_retried():
    broken = make_output("INV-1")
    del broken["invoice"]["invoice_number"]
    client = FakeCompletionClient(replies=[json.dumps(broken)])
    normalizer = InvoiceNormalizer(client, system_prompt="SYS")

    with pytest.raises(OutputValidationError):
        normalizer.normalize("# Invoice")
    assert len(client.calls) == 1


def test_batch_makes_one_call_per_chunk_in_order():
    client = FakeCompletionClient(responder=_echo_batch)
    normalizer = InvoiceNormalizer(client, batch_size=2, system_prompt="SYS")
    markdowns = ["M1", "M2", "M3", "M4", "M5"]

    outputs = normalizer.normalize_batch(markdowns)

    assert len(client.calls) == 3
    assert [prompt_markdowns(user) for _, user in client.calls] == [["M1", "M2"], ["M3", "M4"], ["M5"]]
    assert [o["invoice"]["invoice_number"] for o in outputs] == markdowns


def test_batch_of_empty_input_makes_no_calls():
    client = FakeCompletionClient()
    normalizer = InvoiceNormalizer(client, batch_size=5, system_prompt="SYS")
    assert normalizer.normalize_batch([]) == []
    assert client.calls == []


def test_batch_accepts_bare_object_for_single_item_chunk():
    client = FakeCompletionClient(replies=[json.dumps(make_output("M1"))])
    normalizer = InvoiceNormalizer(client, batch_size=5, system_prompt="SYS")

    outputs = normalizer.normalize_batch(["M1"])

    assert [o["invoice"]["invoice_number"] for o in outputs] == ["M1"]
    assert len(client.calls) == 1


def test_batch_retries_with_strict_array_suffix():
    client = FakeCompletionClient(replies=["Here you go!", json.dumps([make_output("M1")])])
    normalizer = InvoiceNormalizer(client, batch_size=5, system_prompt="SYS")

    outputs = normalizer.normalize_batch(["M1"])

    assert len(outputs) == 1
    assert client.calls[1][1].endswith(STRICT_ARRAY_SUFFIX)


def test_batch_malformed_chunk_aborts_batch():
    client = FakeCompletionClient(replies=["nope", "nope again"])
    normalizer = InvoiceNormalizer(client, batch_size=5, system_prompt="SYS")

    with pytest.raises(MalformedOutputError):
        normalizer.normalize_batch(["M1", "M2"])


def test_batch_item_failing_validation_raises():
    broken = make_output("M2")
    broken["line_items"] = "none"
    client = FakeCompletionClient(replies=[json.dumps([make_output("M1"), broken])])
    normalizer = InvoiceNormalizer(client, batch_size=5, system_prompt="SYS")

    with pytest.raises(OutputValidationError, match="line_items: expected array"):
        normalizer.normalize_batch(["M1", "M2"])


def test_batch_keeps_all_items_when_count_differs():
    client = FakeCompletionClient(replies=[json.dumps([make_output("A"), make_output("B"), make_output("C")])])
    normalizer = InvoiceNormalizer(client, batch_size=5, system_prompt="SYS")

    outputs = normalizer.normalize_batch(["two invoices in one document", "M2"])

    assert [o["invoice"]["invoice_number"] for o in outputs] == ["A", "B", "C"]


def test_system_prompt_lists_sheet_headers():
    normalizer = InvoiceNormalizer(FakeCompletionClient())
    assert "invoice_key,supplier_name" in normalizer.system_prompt
    assert "line_key,invoice_key" in normalizer.system_prompt

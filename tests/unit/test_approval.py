from __future__ import annotations

from typing import List

import pytest

from steward.approval import (
    ApprovalDecision,
    ApprovalRequest,
    ApprovalResponse,
    SessionApprovalPolicy,
)


class _ScriptedPrompt:
    def __init__(self, *responses: ApprovalDecision) -> None:
        self.responses = list(responses)
        self.requests: List[ApprovalRequest] = []

    async def __call__(self, request: ApprovalRequest) -> ApprovalDecision:
        self.requests.append(request)
        return self.responses.pop(0)


@pytest.mark.asyncio
async def test_dont_ask_again_on_new_file_bypasses_everything() -> None:
    prompt = _ScriptedPrompt(ApprovalDecision(ApprovalResponse.APPROVED_NO_ASK_AGAIN))
    policy = SessionApprovalPolicy(prompt)

    first = await policy.approve_write("new.txt", None, "hello")
    assert first.response is ApprovalResponse.APPROVED_NO_ASK_AGAIN
    assert policy.global_bypass is True

    assert (await policy.approve_write("other.txt", "old", "new")).proceeds
    assert (await policy.approve_delete("other.txt", "old")).proceeds
    assert len(prompt.requests) == 1


@pytest.mark.asyncio
async def test_dont_ask_again_on_existing_file_bypasses_only_that_path() -> None:
    prompt = _ScriptedPrompt(
        ApprovalDecision(ApprovalResponse.APPROVED_NO_ASK_AGAIN),
        ApprovalDecision.denied(),
        ApprovalDecision.approved(),
    )
    policy = SessionApprovalPolicy(prompt)

    await policy.approve_write("App.py", "a\nb", "a\nc")
    assert policy.global_bypass is False
    assert policy.is_path_approved("app.py")

    assert (await policy.approve_write("app.py", "a\nc", "a\nd")).proceeds
    assert (await policy.approve_write("other.py", "x", "y")).response is ApprovalResponse.DENIED
    assert (await policy.approve_delete("app.py", "a\nd")).proceeds
    assert len(prompt.requests) == 3
    assert prompt.requests[-1].is_delete is True


@pytest.mark.asyncio
async def test_requests_carry_previews_and_counts() -> None:
    prompt = _ScriptedPrompt(
        ApprovalDecision.approved(),
        ApprovalDecision.approved(),
        ApprovalDecision.redirect("keep it"),
    )
    policy = SessionApprovalPolicy(prompt)

    await policy.approve_write("a.txt", "one\ntwo", "one\nthree")
    await policy.approve_delete("b.txt", "x\ny")
    decision = await policy.approve_delete("pkg", "Folder: pkg/\nContents (0 files):")

    update, delete_file, delete_folder = prompt.requests
    assert (update.additions, update.deletions) == (1, 1)
    assert update.is_new_file is False
    assert "+ three" in update.preview
    assert delete_file.deletions == 2
    assert delete_file.preview == "   1 - x\n   2 - y"
    assert delete_folder.is_folder is True
    assert decision.message == "keep it"
    assert not decision.proceeds


@pytest.mark.asyncio
async def test_reset_forgets_bypasses() -> None:
    prompt = _ScriptedPrompt(
        ApprovalDecision(ApprovalResponse.APPROVED_NO_ASK_AGAIN),
        ApprovalDecision.denied(),
    )
    policy = SessionApprovalPolicy(prompt)

    await policy.approve_write("new.txt", None, "x")
    policy.reset()

    assert (await policy.approve_write("new.txt", None, "x")).response is ApprovalResponse.DENIED

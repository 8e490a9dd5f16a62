"""
Email processing orchestrator tests.

The AI parser is patched at the orchestrator's import site; repositories are
the in-memory implementations.
"""

import pytest

from intake.models.email_message import EmailAttachment, EmailProcessingStatus
from intake.models.work_order import TokenUsage, WorkOrderInput
from intake.plans import ExtractionCapabilities
from intake.services.processing import process_single_email_message

RULES_ONLY = ExtractionCapabilities.rules_only()
AI_ALLOWED = ExtractionCapabilities(can_use_ai_extraction=True, api_key="sk-ant-test")


def _pdf(filename, att_id="att-1", location=None):
    return EmailAttachment(id=att_id, filename=filename, mime_type="application/pdf",
                           storage_location=location)


@pytest.fixture
def process(email_repo, work_order_repo):
    def _process(email_id, user_id=None, capabilities=RULES_ONLY):
        return process_single_email_message(
            email_id,
            user_id,
            email_repo=email_repo,
            work_order_repo=work_order_repo,
            capabilities=capabilities,
        )
    return _process


class TestRuleBasedPath:

    def test_pdf_email_creates_work_order(self, store_email, process, work_order_repo):
        email = store_email(subject="New WO", attachments=[_pdf("1898060.pdf")])

        result = process(email.id, user_id="user-1")

        assert result.email.processing_status == EmailProcessingStatus.PROCESSED
        assert result.skipped_as_duplicate is False
        assert result.duplicate_work_order_numbers == []
        [wo] = result.created_work_orders
        assert wo.work_order_number == "1898060"
        assert wo.user_id == "user-1"
        assert wo.id
        assert work_order_repo.list_for_user("user-1") == [wo]

    def test_reprocessing_is_skipped_as_duplicate(self, store_email, process, work_order_repo):
        email = store_email(attachments=[_pdf("1898060.pdf")])
        process(email.id, user_id="user-1")

        result = process(email.id, user_id="user-1")

        assert result.created_work_orders == []
        assert result.skipped_as_duplicate is True
        assert result.duplicate_work_order_numbers == ["1898060"]
        assert result.email.processing_status == EmailProcessingStatus.SKIPPED_DUPLICATE
        assert len(work_order_repo.list_for_user("user-1")) == 1

    def test_partial_duplicate_is_processed(self, store_email, process, work_order_repo):
        first = store_email(attachments=[_pdf("1111111.pdf")])
        process(first.id, user_id="user-1")
        second = store_email(attachments=[_pdf("1111111.pdf", "a"), _pdf("2222222.pdf", "b")])

        result = process(second.id, user_id="user-1")

        assert [wo.work_order_number for wo in result.created_work_orders] == ["2222222"]
        assert result.duplicate_work_order_numbers == ["1111111"]
        assert result.skipped_as_duplicate is False
        assert result.email.processing_status == EmailProcessingStatus.PROCESSED

    def test_other_tenant_gets_its_own_copy(self, store_email, process, work_order_repo):
        email = store_email(attachments=[_pdf("555555.pdf")])
        process(email.id, user_id="user-a")

        result = process(email.id, user_id="user-b")

        assert len(result.created_work_orders) == 1
        assert result.created_work_orders[0].user_id == "user-b"

    def test_email_without_pdfs(self, store_email, process, work_order_repo):
        email = store_email(attachments=[
            EmailAttachment(id="1", filename="photo.jpg", mime_type="image/jpeg"),
        ])

        result = process(email.id, user_id="user-1")

        assert result.created_work_orders == []
        assert result.skipped_as_duplicate is False
        assert result.email.processing_status == EmailProcessingStatus.PROCESSED
        assert work_order_repo.list_for_user("user-1") == []

    def test_missing_email_returns_none(self, process):
        assert process("does-not-exist", user_id="user-1") is None

    def test_anonymous_tenant(self, store_email, process, work_order_repo):
        email = store_email(attachments=[_pdf("1234567.pdf")])

        result = process(email.id, user_id=None)

        assert result.created_work_orders[0].user_id is None
        assert len(work_order_repo.list_for_user(None)) == 1
        assert work_order_repo.list_for_user("user-1") == []


class TestAiPath:

    def test_ai_results_are_used_and_stamped(self, mocker, store_email, process):
        email = store_email(attachments=[_pdf("scan.pdf")])
        ai = mocker.patch(
            "intake.services.processing.ai_parse_work_orders_from_email",
            return_value=[
                WorkOrderInput(work_order_number="1910446", customer_name="Acme", amount="400.00"),
                WorkOrderInput(work_order_number="1910447"),
            ],
        )

        result = process(email.id, user_id="user-1", capabilities=AI_ALLOWED)

        ai.assert_called_once()
        assert ai.call_args[0][1] is AI_ALLOWED
        numbers = [wo.work_order_number for wo in result.created_work_orders]
        assert numbers == ["1910446", "1910447"]
        assert all(wo.user_id == "user-1" for wo in result.created_work_orders)
        assert result.created_work_orders[0].customer_name == "Acme"

    def test_ai_exception_falls_back_to_rules(self, mocker, store_email, process):
        email = store_email(attachments=[_pdf("1898060.pdf")])
        mocker.patch(
            "intake.services.processing.ai_parse_work_orders_from_email",
            side_effect=RuntimeError("API overloaded"),
        )

        result = process(email.id, user_id="user-1", capabilities=AI_ALLOWED)

        [wo] = result.created_work_orders
        assert wo.work_order_number == "1898060"
        assert wo.service_address == "Unknown facility"

    def test_ai_empty_list_falls_back_to_rules(self, mocker, store_email, process):
        email = store_email(attachments=[_pdf("1898060.pdf")])
        mocker.patch("intake.services.processing.ai_parse_work_orders_from_email", return_value=[])

        result = process(email.id, user_id="user-1", capabilities=AI_ALLOWED)

        assert [wo.work_order_number for wo in result.created_work_orders] == ["1898060"]

    def test_ai_none_falls_back_to_rules(self, mocker, store_email, process):
        email = store_email(subject="WO# 7654321", attachments=[_pdf("scan.pdf")])
        mocker.patch("intake.services.processing.ai_parse_work_orders_from_email", return_value=None)

        result = process(email.id, user_id="user-1", capabilities=AI_ALLOWED)

        assert [wo.work_order_number for wo in result.created_work_orders] == ["7654321"]

    def test_end_to_end_with_mocked_model(self, mocker, store_email, process, write_pdf):
        """Real PDF on disk, real extraction, only the model call is mocked."""
        path = write_pdf("1910446.pdf", "WORK ORDER 1910446", "Acme Grocery")
        email = store_email(attachments=[_pdf("1910446.pdf", location=path)])
        mocker.patch(
            "intake.services.ai_extractor.call_model",
            return_value=(
                '{"workOrders": [{"work_order_number": "1910446", "amount": "$80"}]}',
                TokenUsage(input_tokens=10, output_tokens=5, total_tokens=15),
            ),
        )

        result = process(email.id, user_id="user-1", capabilities=AI_ALLOWED)

        [wo] = result.created_work_orders
        assert wo.amount == "80.00"
        assert wo.currency == "USD"
        assert wo.work_order_pdf_link == path

    def test_unloadable_attachment_is_skipped(self, mocker, store_email, process, write_pdf):
        path = write_pdf("scan.pdf", "WORK ORDER 1910446", "Acme Grocery")
        email = store_email(attachments=[
            _pdf("bad.pdf", att_id="att-1", location="/tmp/x\x00.pdf"),
            _pdf("scan.pdf", att_id="att-2", location=path),
        ])
        call = mocker.patch(
            "intake.services.ai_extractor.call_model",
            return_value=(
                '{"workOrders": [{"work_order_number": "1910446", "customer_name": "Acme"}]}',
                TokenUsage(input_tokens=10, output_tokens=5, total_tokens=15),
            ),
        )

        result = process(email.id, user_id="user-1", capabilities=AI_ALLOWED)

        assert [wo.work_order_number for wo in result.created_work_orders] == ["1910446"]
        prompt = call.call_args[0][0]
        assert "scan.pdf" in prompt
        assert "bad.pdf" not in prompt


class TestStatusWrite:

    def test_save_failure_leaves_status_new(self, mocker, store_email, process, email_repo, work_order_repo):
        email = store_email(attachments=[_pdf("1898060.pdf")])
        mocker.patch.object(work_order_repo, "save_many", side_effect=RuntimeError("insert failed"))

        with pytest.raises(RuntimeError, match="insert failed"):
            process(email.id, user_id="user-1")

        assert email_repo.get_by_id(email.id).processing_status == EmailProcessingStatus.NEW
        assert work_order_repo.list_for_user("user-1") == []

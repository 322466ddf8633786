"""
Tests for the extraction pipeline: ordering, concurrency, error policy and cleanup.
"""
from __future__ import annotations

import json

import pytest

from app.document_classes import DOCUMENT_CLASSES
from app.exceptions import ConversionFailedError, ExtractionFailedError, UnknownDocumentClassError
from app.pipeline.recovery import fallback_record
from app.services.extractor import PageExtractor
from app.services.orchestration.extraction_pipeline import ExtractionPipelineService
from app.services.rasterizer import PageImage

from conftest import FakeExtractor, RecordingLLM, write_document


def _reply(i: int) -> str:
    return json.dumps({"meta": {"month": "March", "year": "2024"}, "transactions": [{"date": f"0{i + 1}/03"}]})


def _assert_cleaned(document):
    assert not document.exists()
    assert not document.with_name(f"{document.name}-pages").exists()


class TestExtractionPipeline:
    """End-to-end runs with a fake pdftoppm and a fake model."""

    @pytest.mark.asyncio
    async def test_one_record_per_page_in_order(self, settings, fake_pdftoppm):
        fake_pdftoppm(pages=5)
        document = write_document(settings)
        extractor = FakeExtractor(_reply)
        records = await ExtractionPipelineService(settings, extractor=extractor).run(document, "bank_statement")

        assert len(records) == 5
        assert [r["transactions"][0]["date"] for r in records] == ["01/03", "02/03", "03/03", "04/03", "05/03"]
        assert set(extractor.prompts) == {DOCUMENT_CLASSES["bank_statement"].prompt}
        _assert_cleaned(document)

    @pytest.mark.asyncio
    async def test_parallel_and_sequential_give_identical_output(self, make_settings, fake_pdftoppm):
        replies = {
            0: '```json\n{"page": 1}\n```',
            1: "no json here",
            2: 'Here you go: {"page": 3} thanks',
            3: "",
        }
        # Earlier pages finish last when run in parallel
        delays = {0: 0.04, 1: 0.03, 2: 0.02, 3: 0.0}
        fake_pdftoppm(pages=4)

        sequential_settings = make_settings(EXTRACT_CONCURRENCY="1")
        seq_extractor = FakeExtractor(replies, delays=delays)
        seq = await ExtractionPipelineService(sequential_settings, extractor=seq_extractor).run(
            write_document(sequential_settings, "seq"), "bank_statement"
        )

        parallel_settings = make_settings(EXTRACT_CONCURRENCY="4")
        par_extractor = FakeExtractor(replies, delays=delays)
        par = await ExtractionPipelineService(parallel_settings, extractor=par_extractor).run(
            write_document(parallel_settings, "par"), "bank_statement"
        )

        assert seq_extractor.completed == [0, 1, 2, 3]
        assert par_extractor.completed == [3, 2, 1, 0]
        assert seq == par == [
            {"page": 1},
            {"error": "Invalid JSON format", "raw": "no json here"},
            {"page": 3},
            {"error": "Invalid JSON format", "raw": ""},
        ]

    @pytest.mark.asyncio
    async def test_zero_pages_fails_and_cleans_up(self, settings, fake_pdftoppm):
        fake_pdftoppm(pages=0)
        document = write_document(settings)
        extractor = FakeExtractor(_reply)
        with pytest.raises(ConversionFailedError):
            await ExtractionPipelineService(settings, extractor=extractor).run(document, "bank_statement")
        assert extractor.prompts == []
        _assert_cleaned(document)

    @pytest.mark.asyncio
    async def test_rasterizer_error_cleans_up(self, settings, fake_pdftoppm):
        fake_pdftoppm(returncode=99)
        document = write_document(settings)
        with pytest.raises(ConversionFailedError):
            await ExtractionPipelineService(settings, extractor=FakeExtractor(_reply)).run(document, "bank_statement")
        _assert_cleaned(document)

    @pytest.mark.asyncio
    async def test_extraction_error_aborts_run_by_default(self, settings, fake_pdftoppm):
        fake_pdftoppm(pages=4)
        document = write_document(settings)
        extractor = FakeExtractor(_reply, delays={2: 0.5, 3: 0.5}, fail_pages={1})
        with pytest.raises(ExtractionFailedError, match="page 2"):
            await ExtractionPipelineService(settings, extractor=extractor).run(document, "bank_statement")
        # slow pages were cancelled rather than left running against deleted files
        assert 2 not in extractor.completed and 3 not in extractor.completed
        _assert_cleaned(document)

    @pytest.mark.asyncio
    async def test_isolate_policy_substitutes_failed_page(self, make_settings, fake_pdftoppm):
        settings = make_settings(PAGE_ERROR_POLICY="isolate")
        fake_pdftoppm(pages=3)
        document = write_document(settings)
        extractor = FakeExtractor({0: '{"a": 1}', 2: '{"c": 3}'}, fail_pages={1})
        records = await ExtractionPipelineService(settings, extractor=extractor).run(document, "bank_statement")

        assert records[0] == {"a": 1}
        assert records[1]["error"] == "Extraction failed"
        assert records[1]["raw"] == ""
        assert "page 2" in records[1]["detail"]
        assert records[2] == {"c": 3}
        _assert_cleaned(document)

    @pytest.mark.asyncio
    async def test_isolate_policy_covers_undecodable_page_image(self, make_settings, fake_pdftoppm):
        settings = make_settings(PAGE_ERROR_POLICY="isolate", IMAGE_RECOMPRESS="true")
        fake_pdftoppm(pages=3, broken_pages={2})
        document = write_document(settings)
        llm = RecordingLLM('{"ok": true}')
        service = ExtractionPipelineService(settings, extractor=PageExtractor(settings, llm=llm))
        records = await service.run(document, "bank_statement")

        assert len(records) == 3
        assert records[0] == {"ok": True}
        assert records[1]["error"] == "Extraction failed"
        assert "Page 2" in records[1]["detail"]
        assert records[2] == {"ok": True}
        assert len(llm.calls) == 2
        _assert_cleaned(document)

    @pytest.mark.asyncio
    async def test_isolate_policy_covers_missing_page_image(self, make_settings, fake_pdftoppm, monkeypatch):
        settings = make_settings(PAGE_ERROR_POLICY="isolate")
        fake_pdftoppm(pages=2)
        document = write_document(settings)
        original = PageImage.read_bytes

        def read_bytes(page):
            if page.index == 0:
                raise FileNotFoundError(page.path)
            return original(page)

        monkeypatch.setattr(PageImage, "read_bytes", read_bytes)
        llm = RecordingLLM("{}")
        service = ExtractionPipelineService(settings, extractor=PageExtractor(settings, llm=llm))
        records = await service.run(document, "bank_statement")

        assert records[0]["error"] == "Extraction failed"
        assert "cannot read image" in records[0]["detail"]
        assert records[1] == {}
        _assert_cleaned(document)

    @pytest.mark.asyncio
    async def test_deeply_nested_reply_becomes_fallback_record(self, settings, fake_pdftoppm):
        fake_pdftoppm(pages=2)
        document = write_document(settings)
        nested = "[" * 100000
        extractor = FakeExtractor({0: nested, 1: '{"b": 2}'})
        records = await ExtractionPipelineService(settings, extractor=extractor).run(document, "bank_statement")

        assert records == [fallback_record(nested), {"b": 2}]
        _assert_cleaned(document)

    @pytest.mark.asyncio
    async def test_default_document_class_used_when_none_given(self, make_settings, fake_pdftoppm):
        settings = make_settings(DEFAULT_DOCUMENT_CLASS="resume")
        fake_pdftoppm(pages=1)
        extractor = FakeExtractor({0: '{"name": "Jane"}'})
        await ExtractionPipelineService(settings, extractor=extractor).run(write_document(settings))
        assert extractor.prompts == [DOCUMENT_CLASSES["resume"].prompt]

    @pytest.mark.asyncio
    async def test_unknown_document_class_still_cleans_up(self, settings, fake_pdftoppm):
        fake = fake_pdftoppm(pages=1)
        document = write_document(settings)
        with pytest.raises(UnknownDocumentClassError):
            await ExtractionPipelineService(settings, extractor=FakeExtractor(_reply)).run(document, "tax_form")
        assert fake.calls == []
        _assert_cleaned(document)

    @pytest.mark.asyncio
    async def test_validation_normalizes_records(self, make_settings, fake_pdftoppm):
        settings = make_settings(VALIDATE_RECORDS="true")
        fake_pdftoppm(pages=2)
        replies = {
            0: '{"invoiceNumber": "F-1", "total": "€ 1.234,56", "currency": "eur"}',
            1: "unreadable",
        }
        records = await ExtractionPipelineService(settings, extractor=FakeExtractor(replies)).run(
            write_document(settings), "invoice"
        )
        assert records[0]["total"] == 1234.56
        assert records[0]["currency"] == "EUR"
        assert records[0]["lineItems"] == []
        assert records[1] == {"error": "Invalid JSON format", "raw": "unreadable"}

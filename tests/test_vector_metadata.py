import pytest

from shared.clients.rag.models.VectorPoint import (
    DiseaseTag,
    MedicineTag,
    PatientTag,
    SearchFilter,
    VectorMetadata,
    tag_from_subtype,
)
from shared.models.document import RagSubtype


def _metadata(tag) -> VectorMetadata:
    return VectorMetadata(
        document_id="doc-1",
        document_title="Ibuprofen",
        parent_chunk_id="parent-1",
        child_text="Take 200mg.",
        parent_index=0,
        child_index=2,
        tag=tag,
    )


def test_payload_never_contains_parent_text():
    payload = _metadata(MedicineTag()).to_payload()

    assert payload["parentChunkId"] == "parent-1"
    assert "parentText" not in payload
    assert "patient" not in payload


def test_patient_payload_carries_ownership():
    payload = _metadata(PatientTag(patient_id="p-7")).to_payload()

    assert payload["type"] == "patient"
    assert payload["patient"] is True
    assert payload["patientId"] == "p-7"
    assert VectorMetadata.from_payload(payload).tag == PatientTag(patient_id="p-7")


def test_payload_without_parent_reference_is_rejected():
    payload = _metadata(MedicineTag()).to_payload()
    del payload["parentChunkId"]

    with pytest.raises(ValueError):
        VectorMetadata.from_payload(payload)


def test_unknown_tag_is_rejected():
    payload = _metadata(MedicineTag()).to_payload()
    payload["type"] = "recipe"

    with pytest.raises(ValueError):
        VectorMetadata.from_payload(payload)


def test_tag_from_subtype():
    assert tag_from_subtype(RagSubtype.DISEASE) == DiseaseTag()
    assert tag_from_subtype(RagSubtype.MEDICINE) == MedicineTag()
    assert tag_from_subtype(None) == MedicineTag()


def test_general_filter_never_selects_patients():
    assert SearchFilter.general().tag_types == ["medicine", "disease"]
    assert SearchFilter.general(["disease"]).tag_types == ["disease"]
    assert SearchFilter.general(["patient"]).tag_types == ["medicine", "disease"]
    assert SearchFilter.general().patient_id is None


def test_null_parent_reference_is_rejected():
    payload = _metadata(MedicineTag()).to_payload()
    payload["parentChunkId"] = None

    with pytest.raises(ValueError):
        VectorMetadata.from_payload(payload)


def test_payload_without_document_id_is_accepted():
    payload = _metadata(MedicineTag()).to_payload()
    del payload["documentId"]

    metadata = VectorMetadata.from_payload(payload)

    assert metadata.document_id == ""
    assert metadata.parent_chunk_id == "parent-1"

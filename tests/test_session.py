import requests

from aml.models.loader import ModelLoader
from aml.models.resolver import ModelResolver
from aml.session import (
    MSG_DOWNLOAD_ERROR, MSG_FETCHING, MSG_INFERENCE_ERROR, MSG_LOAD_ERROR, MSG_NO_MODEL,
    SessionContext, SessionController, SessionState as S,
)
from aml.vision.classify import InferenceRunner
from conftest import CountingResources, FakeModelStore, FakeRuntime, ListPicker

CAT_DOG = [{"label": "cat", "confidence": 0.92}, {"label": "dog", "confidence": 0.10}]


def _controller(tmp_path, records, picker, answers=(False,), store=None, runtime=None, notes=None):
    runtime = runtime or FakeRuntime(detections=CAT_DOG)
    shown = []
    answers = list(answers)

    def present(image, inferences):
        shown.append([i.display_text() for i in inferences])
        return answers.pop(0) if answers else False

    ctl = SessionController(
        resolver=ModelResolver(records),
        loader=ModelLoader(store or FakeModelStore(tmp_path / "models"), runtime,
                           tmp_path / "cache", resources=CountingResources()),
        runner=InferenceRunner(runtime),
        picker=picker,
        present=present,
        notify=(notes.append if notes is not None else None),
    )
    return ctl, shown, runtime


def test_happy_path_shows_ranked_results(tmp_path, records, red_png):
    records.add("models", {"name": "m1", "dataset_id": "ds1", "generated_at": 1000})
    notes = []
    ctl, shown, runtime = _controller(tmp_path, records, ListPicker([red_png]), notes=notes)

    ctx = ctl.run(SessionContext(dataset="ds1"))

    assert shown == [["CAT 0.920", "DOG 0.100"]]
    assert ctx.transitions == [S.FETCHING_MODEL_INFO, S.CAPTURING_IMAGE, S.CLASSIFYING,
                               S.SHOWING_RESULTS, S.IDLE]
    assert ctx.handle.artifact_name == "m1"
    assert notes == [MSG_FETCHING]
    assert len(runtime.buffers[0]) == 3 * 224 * 224


def test_no_model_never_offers_picking(tmp_path, records):
    picker = ListPicker([b"img"])
    store = FakeModelStore(tmp_path / "models")
    ctl, shown, _ = _controller(tmp_path, records, picker, store=store)
    assert ctl.inference_available("ds1") is False

    ctx = ctl.run(SessionContext(dataset="ds1"))

    assert picker.calls == 0
    assert shown == []
    assert ctx.state == S.IDLE
    assert ctx.notifications == [MSG_FETCHING, MSG_NO_MODEL]
    assert store.downloads == []


def test_download_failure_still_reaches_capture(tmp_path, records, red_png):
    records.add("models", {"name": "m1", "dataset_id": "ds1", "generated_at": 1000})
    runtime = FakeRuntime(detections=CAT_DOG)
    runtime.is_loaded = True  # a model from an earlier session
    store = FakeModelStore(tmp_path, fail_with=ConnectionError("offline"))
    ctl, shown, _ = _controller(tmp_path, records, ListPicker([red_png]), store=store, runtime=runtime)

    ctx = ctl.run(SessionContext(dataset="ds1"))

    assert MSG_DOWNLOAD_ERROR in ctx.notifications
    assert S.CAPTURING_IMAGE in ctx.transitions
    assert shown == [["CAT 0.920", "DOG 0.100"]]


def test_download_failure_without_prior_model_aborts_at_classify(tmp_path, records, red_png):
    records.add("models", {"name": "m1", "dataset_id": "ds1", "generated_at": 1000})
    store = FakeModelStore(tmp_path, fail_with=ConnectionError("offline"))
    ctl, shown, _ = _controller(tmp_path, records, ListPicker([red_png]), store=store)

    ctx = ctl.run(SessionContext(dataset="ds1"))

    assert ctx.notifications[-2:] == [MSG_DOWNLOAD_ERROR, MSG_INFERENCE_ERROR]
    assert ctx.transitions[-2:] == [S.CLASSIFYING, S.IDLE]
    assert shown == []


def test_load_failure_blocks_classifying(tmp_path, records):
    records.add("models", {"name": "m1", "dataset_id": "ds1", "generated_at": 1000})
    picker = ListPicker([b"img"])
    ctl, _, _ = _controller(tmp_path, records, picker, runtime=FakeRuntime(status="failed"))

    ctx = ctl.run(SessionContext(dataset="ds1"))

    assert ctx.notifications[-1] == MSG_LOAD_ERROR
    assert picker.calls == 0
    assert ctx.state == S.IDLE


def test_cancelled_pick_ends_quietly(tmp_path, records):
    records.add("models", {"name": "m1", "dataset_id": "ds1", "generated_at": 1000})
    ctl, shown, _ = _controller(tmp_path, records, ListPicker([]))

    ctx = ctl.run(SessionContext(dataset="ds1"))

    assert ctx.transitions[-2:] == [S.CAPTURING_IMAGE, S.IDLE]
    assert ctx.notifications == [MSG_FETCHING]
    assert shown == []


def test_retake_loops_back_to_capture(tmp_path, records, red_png):
    records.add("models", {"name": "m1", "dataset_id": "ds1", "generated_at": 1000})
    picker = ListPicker([red_png, red_png])
    ctl, shown, _ = _controller(tmp_path, records, picker, answers=(True, False))

    ctx = ctl.run(SessionContext(dataset="ds1"))

    assert len(shown) == 2
    assert ctx.transitions.count(S.CAPTURING_IMAGE) == 2
    assert ctx.state == S.IDLE


def test_image_path_is_read(tmp_path, records, red_png):
    records.add("models", {"name": "m1", "dataset_id": "ds1", "generated_at": 1000})
    img = tmp_path / "pick.png"
    img.write_bytes(red_png)
    ctl, shown, _ = _controller(tmp_path, records, ListPicker([str(img)]))

    ctl.run(SessionContext(dataset="ds1"))

    assert shown == [["CAT 0.920", "DOG 0.100"]]


def test_undecodable_image_aborts_session(tmp_path, records):
    records.add("models", {"name": "m1", "dataset_id": "ds1", "generated_at": 1000})
    ctl, shown, _ = _controller(tmp_path, records, ListPicker([b"not an image"]))

    ctx = ctl.run(SessionContext(dataset="ds1"))

    assert ctx.notifications[-1] == MSG_INFERENCE_ERROR
    assert ctx.state == S.IDLE
    assert shown == []


class UnreachableRecords:
    def query(self, collection, where, order_by=None, descending=False):
        raise requests.ConnectionError("clickhouse down")


def test_unreachable_record_store_is_a_download_error(tmp_path, red_png):
    store = FakeModelStore(tmp_path / "models")
    runtime = FakeRuntime(detections=CAT_DOG)
    runtime.is_loaded = True
    ctl, shown, _ = _controller(tmp_path, UnreachableRecords(), ListPicker([red_png]),
                                store=store, runtime=runtime)

    ctx = ctl.run(SessionContext(dataset="ds1"))

    assert ctx.notifications[:2] == [MSG_FETCHING, MSG_DOWNLOAD_ERROR]
    assert "clickhouse down" in ctx.error
    assert store.downloads == []
    assert shown == [["CAT 0.920", "DOG 0.100"]]
    assert ctx.state == S.IDLE


def test_malformed_latest_record_without_prior_model_ends_idle(tmp_path, records, red_png):
    records.add("models", {"name": "m1", "dataset_id": "ds1", "generated_at": None})
    store = FakeModelStore(tmp_path / "models")
    ctl, shown, _ = _controller(tmp_path, records, ListPicker([red_png]), store=store)

    ctx = ctl.run(SessionContext(dataset="ds1"))

    assert ctx.notifications == [MSG_FETCHING, MSG_DOWNLOAD_ERROR, MSG_INFERENCE_ERROR]
    assert ctx.record is None
    assert store.downloads == []
    assert shown == []
    assert ctx.state == S.IDLE

from __future__ import annotations
import argparse, os, sys, time
from pathlib import Path

from aml.io import MinIOClient, ClickHouseRecordStore
from aml.io.model_store import MODEL_FILENAME, sha256_file


def main():
    ap = argparse.ArgumentParser(description="Upload a trained ONNX classifier and register it for a dataset.")
    ap.add_argument("--onnx", required=True, type=Path, help="exported model, e.g. runs/cls/weights/best.onnx")
    ap.add_argument("--dataset-id", required=True, help="automl id of the dataset the model was trained on")
    ap.add_argument("--name", default=None, help="artifact name, defaults to <dataset-id>_<timestamp>")
    ap.add_argument("--generated-at", type=int, default=None, help="epoch millis, defaults to now")
    ap.add_argument("--bucket", default=os.getenv("MINIO_BUCKET", "automl"))
    ap.add_argument("--prefix", default="models")
    ap.add_argument("--minio-endpoint", default=os.getenv("MINIO_ENDPOINT", "127.0.0.1:9000"))
    ap.add_argument("--clickhouse-url", default=os.getenv("CLICKHOUSE_URL", "http://127.0.0.1:8123"))
    ap.add_argument("--database", default="automl")
    args = ap.parse_args()

    onnx_src: Path = args.onnx.resolve()
    if not onnx_src.exists():
        sys.exit(f"[ERR] ONNX not found: {onnx_src}")

    generated_at = args.generated_at or int(time.time() * 1000)
    name = args.name or f"{args.dataset_id}_{time.strftime('%Y%m%d_%H%M%S', time.gmtime(generated_at / 1000))}"

    minio = MinIOClient(
        endpoint=args.minio_endpoint,
        access_key=os.getenv("MINIO_ACCESS_KEY", "minioadmin"),
        secret_key=os.getenv("MINIO_SECRET_KEY", "minioadmin"),
        default_bucket=args.bucket,
    )
    key = minio.make_model_key(args.prefix, name, MODEL_FILENAME)
    url = minio.put_file(key, onnx_src)

    records = ClickHouseRecordStore(
        http_url=args.clickhouse_url,
        database=args.database,
        user=os.getenv("CLICKHOUSE_USER", "default"),
        password=os.getenv("CLICKHOUSE_PASSWORD", ""),
    )
    records.insert("models", {"name": name, "dataset_id": args.dataset_id, "generated_at": generated_at})

    print("=== PUBLISH OK ===")
    print("Dataset     :", args.dataset_id)
    print("Model name  :", name)
    print("Generated at:", generated_at)
    print("Uploaded to :", url)
    print("ONNX sha256 :", sha256_file(onnx_src))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

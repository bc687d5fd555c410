#!/usr/bin/env python3
import argparse, time, json
from pathlib import Path
import requests

def list_images(root: Path):
    exts = {".jpg",".jpeg",".png",".bmp"}
    for p in sorted(root.rglob("*")):
        if p.suffix.lower() in exts and p.is_file():
            yield p

def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--images", required=True, help="Folder of input images")
    ap.add_argument("--dataset-id", required=True, help="automl id of the dataset whose model is used")
    ap.add_argument("--api", default="http://127.0.0.1:8000")
    ap.add_argument("--user-id", default=None)
    ap.add_argument("--out-jsonl", default="data/processed/inference_results.jsonl")
    ap.add_argument("--sleep-ms", type=int, default=200, help="pause between requests")
    args = ap.parse_args()

    url = f"{args.api.rstrip('/')}/v1/datasets/{args.dataset_id}/infer"
    out_path = Path(args.out_jsonl)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    sent = 0
    with out_path.open("a", encoding="utf-8") as fout:
        for img in list_images(Path(args.images)):
            files = {"image": (img.name, img.read_bytes(), "application/octet-stream")}
            data = {"user_id": args.user_id} if args.user_id else {}
            try:
                r = requests.post(url, data=data, files=files, timeout=120)
                r.raise_for_status()
                resp = r.json()
                fout.write(json.dumps({"image": img.name, **resp}, ensure_ascii=False) + "\n")
                sent += 1
                print(f"[OK] {img.name} -> {', '.join(resp.get('display', []))}")
            except requests.RequestException as e:
                print(f"[ERR] {img.name}: {e}")
            time.sleep(args.sleep_ms/1000.0)

    print(f"Done. Appended {sent} records -> {out_path}")

if __name__ == "__main__":
    main()

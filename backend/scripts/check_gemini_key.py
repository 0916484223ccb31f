#!/usr/bin/env python3
"""
Gemini API key diagnostics.

Step 1: list models (is the key valid at all?)
Step 2: text-only generation (is billing / quota attached?)
Step 3: optional image generation against a local flyer file
"""
import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv
from google import genai
from google.genai import types

from chirashi.analysis.parser import parse_products
from chirashi.config import Settings
from chirashi.images.normalizer import normalize_image


def mask(key: str) -> str:
    return f"{key[:6]}...{key[-4:]}"


def list_flash_models(client: genai.Client) -> list[str]:
    names = []
    for model in client.models.list():
        name = model.name or ""
        if "flash" in name or "2.0" in name:
            actions = ",".join(model.supported_actions or [])
            names.append(f"{name} [{actions}]")
    return names


async def probe_image(client: genai.Client, model: str, path: Path, settings: Settings) -> None:
    image = normalize_image(path.read_bytes(), settings.pipeline)
    resp = await client.aio.models.generate_content(
        model=model,
        contents=[
            "この画像はスーパーのチラシです。最初の3商品だけ抽出してJSONで返してください:\n"
            '{"products":[{"productName":"商品名","price":{"taxIncl":100},"category":"肉"}]}\n'
            "JSONのみ出力してください。",
            types.Part.from_bytes(data=image.data, mime_type=image.mime_type),
        ],
    )
    print("---")
    print(resp.text)
    print("---")
    products = parse_products(resp.text or "")
    print(f"✓ {len(products)} products parsed")
    if products:
        first = products[0]
        print(f"  e.g. {first.product_name} - ¥{first.price.tax_incl}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Check the Gemini API key")
    parser.add_argument("--image", type=Path, help="Local flyer image for step 3")
    args = parser.parse_args()

    load_dotenv()
    settings = Settings()
    if not settings.gemini_api_key:
        print("✗ GEMINI_API_KEY is not set", file=sys.stderr)
        return 1

    print(f"API Key: {mask(settings.gemini_api_key)}\n")
    client = genai.Client(api_key=settings.gemini_api_key)

    print("=== Step 1: list models ===")
    try:
        for line in list_flash_models(client):
            print(f"  - {line}")
        print("✓ Key is valid")
    except Exception as e:
        print(f"✗ Model listing failed: {e}")
        return 1

    print(f"\n=== Step 2: text generation ({settings.gemini_model}) ===")
    try:
        resp = client.models.generate_content(
            model=settings.gemini_model, contents="1+1は？数字だけ答えて"
        )
        print(f"✓ Answer: {(resp.text or '(empty)').strip()}")
    except Exception as e:
        print(f"✗ Text generation failed: {e}")
        return 1

    if args.image:
        print(f"\n=== Step 3: image generation ({args.image.name}) ===")
        try:
            asyncio.run(probe_image(client, settings.gemini_model, args.image, settings))
        except Exception as e:
            print(f"✗ Image generation failed: {e}")
            return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

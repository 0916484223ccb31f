"""
Instruction prompt sent with every flyer image.
"""

from datetime import date
from typing import Optional

from chirashi.models import CATEGORIES


def build_flyer_prompt(year: Optional[int] = None) -> str:
    """
    Build the extraction prompt.

    The year anchors relative validity phrases ("本日限り", "18日のみ") to
    concrete calendar dates.
    """
    year = year or date.today().year
    category_list = ", ".join(f'"{c}"' for c in CATEGORIES)
    return (
        "あなたはスーパーマーケットのチラシ画像を読み取るアシスタントです。\n"
        "この画像から読み取れる商品をすべて抽出し、JSONで返してください。\n\n"
        "有効期間について:\n"
        "チラシ全体の期間（例:「2/17(月)〜2/20(木)」）とは別に、商品ごとに期間が"
        "指定されていることがあります（例:「本日限り」「18日のみ」「17日〜18日」）。\n"
        "商品ごとに最も具体的な期間を選び、必ず具体的な日付に直してください。\n"
        f"今年は{year}年です。日付はすべてYYYY-MM-DD形式にしてください。\n\n"
        "出力形式（JSONオブジェクト1つのみ。前後に説明文を付けないこと）:\n"
        "{\n"
        '  "products": [\n'
        "    {\n"
        '      "productName": "国産若鶏もも肉",\n'
        '      "price": {"taxExcl": 98, "taxIncl": 105},\n'
        '      "unit": "100g",\n'
        '      "category": "肉",\n'
        f'      "validFrom": "{year}-02-17",\n'
        f'      "validTo": "{year}-02-20"\n'
        "    }\n"
        "  ]\n"
        "}\n\n"
        "ルール:\n"
        "- productName: 表記どおりの商品名（ブランド名を含む）\n"
        "- price.taxExcl: 税抜価格（整数）。不明ならnull\n"
        "- price.taxIncl: 税込価格（整数）。不明ならnull。税抜のみ記載なら税抜×1.08\n"
        '- unit: 販売単位（"1パック", "100g", "1本", "1袋" など）。不明なら"1点"\n'
        f"- category: 次のいずれか1つ: {category_list}\n"
        "- validFrom / validTo: その価格の開始日・終了日。「本日限り」は当日。"
        "商品ごとの記載がなければチラシ全体の期間。まったく不明ならnull\n"
        "- 読み取れない商品は出力しない\n"
        "- 価格が読み取れない商品は出力しない\n"
        "- 有効なJSONだけを出力する"
    )

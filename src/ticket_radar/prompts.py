"""Prompt templates."""

RISK_PROMPT = """以下は同じ顧客の過去のサポートチケットです。各チケットのクレームリスクを判定してください。

{tickets}

判定基準:
- danger: 怒り・クレーム・強い非難の言葉がある
- warn: 不満や苛立ちはあるが怒りには至っていない
- safe: 通常の問い合わせ・質問

重要: レベルは問題の深刻度ではなく、言葉のトーンで判定してください。

各チケットについて次の形式のJSON配列のみを返してください:
[{{"id": "チケットID", "level": "safe|warn|danger", "score": 0から100の整数, "summary": "20文字以内の要約"}}]"""

RISK_TICKET_LINE = "[チケット {id}] {text}"


SUMMARY_PROMPT = """サポートチケットのやり取りを役割ごとに要約してください。

件名: {subject}

## 顧客の発言
{customer}

## オペレーターの返信
{operator}

## 社内メモ
{memo}

## システム通知
{system}

各項目を40文字以内で、挨拶や定型文を除いた本質のみで要約してください。
該当する発言がない項目は空文字にしてください。
次の形式のJSONオブジェクトのみを返してください:
{{"customer": "", "operator": "", "system": "", "memo": ""}}"""

EMPTY_BUCKET = "（なし）"


NO_HISTORY_PROMPT = "過去の問い合わせ履歴はありません。"

HISTORY_PROMPT_HEADER = """以下は顧客の過去の問い合わせ履歴です。この情報を基に、以下の3つの観点で要約を作成してください：

1. **過去の問い合わせ履歴の要約**: 主な問い合わせ内容とその結果
2. **注意点**: この顧客に対応する際に注意すべき点
3. **対応のヒント**: 効果的な対応方法の提案

---

## 過去のチケット履歴

"""

HISTORY_TICKET = """### チケット {index}
- **件名**: {subject}
- **作成日時**: {created_at}
- **ステータス**: {status}
"""

HISTORY_TICKET_DESCRIPTION = "- **内容**: {description}\n"

HISTORY_PROMPT_FOOTER = """---

上記の情報を基に、簡潔で実用的な要約を日本語で作成してください。"""

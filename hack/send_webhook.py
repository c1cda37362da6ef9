"""Webhook 送信スクリプト。

署名付きの Telegram / Slack Webhook をローカルの chatrelay に送信する開発・テスト用スクリプト。
"""

import argparse
import hashlib
import hmac
import http.client
import json
import sys
import time


def create_parser() -> argparse.ArgumentParser:
    """コマンドライン引数パーサーを作成する。"""
    parser = argparse.ArgumentParser(
        description="署名付き Webhook をサーバーに送信する",
    )
    parser.add_argument(
        "platform",
        choices=["telegram", "slack"],
        help="送信元プラットフォーム",
    )
    parser.add_argument(
        "text",
        help="送信するメッセージ本文",
    )
    parser.add_argument(
        "-H",
        "--host",
        default="localhost",
        help="サーバーホスト (デフォルト: localhost)",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=8080,
        help="サーバーポート (デフォルト: 8080)",
    )
    parser.add_argument(
        "-s",
        "--secret",
        default="",
        help="Telegram の webhook secret または Slack の signing secret",
    )
    parser.add_argument(
        "--channel",
        default="42",
        help="チャンネル ID (デフォルト: 42)",
    )
    parser.add_argument(
        "--user",
        default="7",
        help="ユーザー ID (デフォルト: 7)",
    )
    parser.add_argument(
        "-n",
        "--count",
        type=int,
        default=1,
        help="送信回数 (デフォルト: 1)",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=float,
        default=0.0,
        help="送信間隔（秒） (デフォルト: 0.0)",
    )
    return parser


def build_telegram_request(
    text: str, channel: str, user: str, secret: str, sequence: int
) -> tuple[bytes, dict[str, str]]:
    """Telegram の Update ペイロードとヘッダーを作成する。"""
    update = {
        "update_id": int(time.time()) * 100 + sequence,
        "message": {
            "message_id": sequence + 1,
            "from": {"id": int(user), "is_bot": False, "first_name": "hack"},
            "chat": {"id": int(channel), "type": "private"},
            "date": int(time.time()),
            "text": text,
        },
    }
    headers = {"Content-Type": "application/json"}
    if secret:
        headers["X-Telegram-Bot-Api-Secret-Token"] = secret
    return json.dumps(update).encode(), headers


def build_slack_request(
    text: str, channel: str, user: str, secret: str, sequence: int
) -> tuple[bytes, dict[str, str]]:
    """Slack の event_callback ペイロードと v0 署名ヘッダーを作成する。"""
    now = time.time()
    envelope = {
        "type": "event_callback",
        "team_id": "T0HACK",
        "event": {
            "type": "message",
            "user": user,
            "text": text,
            "channel": channel,
            "ts": f"{now:.6f}",
        },
    }
    body = json.dumps(envelope).encode()
    timestamp = str(int(now))
    base = f"v0:{timestamp}:".encode() + body
    digest = hmac.new(secret.encode(), base, hashlib.sha256).hexdigest()
    headers = {
        "Content-Type": "application/json",
        "X-Slack-Request-Timestamp": timestamp,
        "X-Slack-Signature": f"v0={digest}",
    }
    return body, headers


def send_webhook(
    host: str, port: int, platform: str, body: bytes, headers: dict[str, str]
) -> tuple[bool, str]:
    """Webhook を送信する。

    Args:
        host: サーバーホスト
        port: サーバーポート
        platform: telegram または slack
        body: リクエストボディ
        headers: リクエストヘッダー

    Returns:
        (成功フラグ, メッセージ) のタプル
    """
    try:
        conn = http.client.HTTPConnection(host, port, timeout=30)
        try:
            conn.request("POST", f"/webhook/{platform}", body=body, headers=headers)
            response = conn.getresponse()
            response_body = response.read().decode("utf-8")

            if response.status == 200:
                return True, response_body
            return False, f"{response.status} {response.reason}: {response_body}"
        finally:
            conn.close()
    except ConnectionRefusedError:
        return False, "Connection refused"
    except TimeoutError:
        return False, "Connection timeout"
    except OSError as e:
        return False, str(e)


def main() -> int:
    """メインエントリーポイント。"""
    parser = create_parser()
    args = parser.parse_args()

    build = (
        build_telegram_request if args.platform == "telegram" else build_slack_request
    )
    url = f"http://{args.host}:{args.port}/webhook/{args.platform}"
    print(f"Sending {args.platform} webhook to {url}...")

    for i in range(args.count):
        if i > 0 and args.interval > 0:
            time.sleep(args.interval)

        body, headers = build(args.text, args.channel, args.user, args.secret, i)
        success, message = send_webhook(
            args.host, args.port, args.platform, body, headers
        )

        if success:
            print(f"[{i + 1}/{args.count}] {message}")
        else:
            print(f"Error: {message}")
            return 1

    print("Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())

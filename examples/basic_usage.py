"""Basic reporting example using the built-in DI container."""

import os

from delivery_analytics.core.container import DIContainer


def main() -> None:
    reporter = DIContainer.create_reporter(
        supabase_url=os.environ.get("SUPABASE_URL"),
        supabase_anon_key=os.environ.get("SUPABASE_ANON_KEY"),
        sqlite_path=os.environ.get("MESSAGE_LOGS_DB", "message_logs.db"),
    )

    report = reporter.build_report("7d")
    result = report.result
    print("Window:", report.plan.start.isoformat(), "->", report.plan.end.isoformat())
    print("Messages:", result.total_messages)
    print("Delivery rate:", f"{result.delivery_rate_percent}%")
    for label, count in result.bucket_series():
        print(f"  {label}: {count}")
    for recipient in result.top_recipients:
        print("Top recipient:", recipient.identifier, recipient.count)


if __name__ == "__main__":
    main()

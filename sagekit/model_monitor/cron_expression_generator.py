"""Cron expressions accepted by the monitoring schedule API."""

from __future__ import annotations


class CronExpressionGenerator:
    @staticmethod
    def hourly():
        """Run at the top of every hour."""
        return "cron(0 * ? * * *)"

    @staticmethod
    def daily(hour=0):
        """Run once a day at ``hour`` (UTC, 24h)."""
        return "cron(0 {} ? * * *)".format(hour)

    @staticmethod
    def daily_every_x_hours(hour_interval, starting_hour=0):
        """Run every ``hour_interval`` hours, starting at ``starting_hour`` (UTC)."""
        return "cron(0 {}/{} ? * * *)".format(starting_hour, hour_interval)

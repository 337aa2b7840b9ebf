"""Runners: hazard poll loop, Kinesis / CloudWatch publication and the CLI."""

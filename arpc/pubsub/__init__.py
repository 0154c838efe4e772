"""Publish/subscribe topic encoding."""
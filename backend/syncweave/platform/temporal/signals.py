"""Signal names shared by workflows and the dispatcher."""

NEW_WEBHOOK_SIGNAL = "new_webhook_signal"
BOT_JOINED_CHANNEL_SIGNAL = "bot_joined_channel_signal"

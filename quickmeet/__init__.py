"""QuickMeet: book a free meeting room on Google Calendar in a few clicks."""

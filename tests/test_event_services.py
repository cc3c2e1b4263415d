from unittest.mock import patch

from doclib.services.event import EventType, publish_event


class TestPublishEvent:
    def test_queues_process_event(self, published):
        publish_event(
            EventType.file_created,
            entity_type="file_item",
            entity_id="5",
            actor_id="2",
            file_item_id=5,
            payload={"title": "Handbook"},
        )
        published.assert_called_once_with(
            event_type="file.created",
            entity_type="file_item",
            entity_id=5,
            actor_id=2,
            file_item_id=5,
            payload={"title": "Handbook"},
        )

    def test_optional_fields(self, published):
        publish_event(EventType.section_deleted, entity_type="section", entity_id=3)
        kwargs = published.call_args.kwargs
        assert kwargs["actor_id"] is None
        assert kwargs["file_item_id"] is None
        assert kwargs["payload"] == {}

    def test_broker_failure_is_swallowed(self):
        with patch(
            "doclib.tasks.events.process_event.delay",
            side_effect=ConnectionError("broker down"),
        ):
            publish_event(EventType.file_deleted, entity_type="file_item", entity_id=1)

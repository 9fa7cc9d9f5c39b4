import base64
from unittest.mock import Mock

from botocore.exceptions import ClientError

from lighthouse_lambda.dispatcher import FanOutDispatcher


def _receive_all(aws):
    bodies = []
    while True:
        response = aws.sqs.receive_message(QueueUrl=aws.queue_url, MaxNumberOfMessages=10)
        messages = response.get("Messages", [])
        if not messages:
            return bodies
        for message in messages:
            bodies.append(base64.b64decode(message["Body"]).decode("utf-8"))
            aws.sqs.delete_message(QueueUrl=aws.queue_url, ReceiptHandle=message["ReceiptHandle"])


def test_publishes_four_messages_per_subject(aws, logger):
    dispatcher = FanOutDispatcher(aws.sqs, aws.queue_url, logger)

    result = dispatcher.dispatch_all(["googlesearch", "ebay"])

    expected = {
        f"{subject}_{variant}_{device}"
        for subject in ("googlesearch", "ebay")
        for variant in ("thirdPartyIncluded", "thirdPartyBlocked")
        for device in ("mobile", "desktop")
    }
    assert len(result.published) == 8
    assert set(result.published) == expected
    assert result.failed == {}
    assert sorted(_receive_all(aws)) == sorted(expected)


def test_per_subject_order(aws, logger):
    result = FanOutDispatcher(aws.sqs, aws.queue_url, logger).dispatch_all(["googlesearch"])
    assert result.published == [
        "googlesearch_thirdPartyIncluded_mobile",
        "googlesearch_thirdPartyIncluded_desktop",
        "googlesearch_thirdPartyBlocked_mobile",
        "googlesearch_thirdPartyBlocked_desktop",
    ]


def test_failure_is_isolated_to_subject(logger):
    sqs = Mock()

    def send_message(QueueUrl, MessageBody):
        text = base64.b64decode(MessageBody).decode("utf-8")
        if text == "broken_thirdPartyIncluded_desktop":
            raise ClientError({"Error": {"Code": "InternalError", "Message": "boom"}}, "SendMessage")
        return {"MessageId": text}

    sqs.send_message.side_effect = send_message
    dispatcher = FanOutDispatcher(sqs, "queue-url", logger, max_workers=2)

    result = dispatcher.dispatch_all(["broken", "ebay"])

    assert list(result.failed) == ["broken"]
    assert "broken_thirdPartyIncluded_mobile" in result.published
    assert "broken_thirdPartyBlocked_mobile" not in result.published
    assert len([m for m in result.published if m.startswith("ebay_")]) == 4
    assert sqs.send_message.call_count == 6
    logger.exception.assert_called_once()


def test_no_subjects(logger):
    sqs = Mock()
    result = FanOutDispatcher(sqs, "queue-url", logger).dispatch_all([])
    assert result.published == []
    sqs.send_message.assert_not_called()

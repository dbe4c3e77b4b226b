"""
Tests for the ordered Bedrock model fallback chain
"""
import unittest
from unittest.mock import Mock, patch

from botocore.exceptions import ClientError

from utils.model_fallback import AllModelsFailedError, ModelFallbackChain


def _throttled():
    return ClientError({"Error": {"Code": "ThrottlingException", "Message": "slow down"}}, "Converse")


def _reply(text="{}"):
    return {"output": {"message": {"content": [{"text": text}]}}, "usage": {"inputTokens": 10, "outputTokens": 5}}


class TestModelFallbackChain(unittest.TestCase):

    def test_first_model_answers(self):
        invoke = Mock(return_value=(_reply(), 12.5))
        chain = ModelFallbackChain(["model-a", "model-b"], invoke=invoke)

        result = chain.converse([{"role": "user", "content": [{"text": "hi"}]}], system="sys")

        self.assertEqual(result.model_id, "model-a")
        self.assertEqual(result.latency_ms, 12.5)
        self.assertEqual(len(result.attempts), 1)
        invoke.assert_called_once()
        self.assertEqual(invoke.call_args.kwargs["model_id"], "model-a")
        self.assertEqual(invoke.call_args.kwargs["tries"], 2)

    def test_falls_back_to_next_model(self):
        invoke = Mock(side_effect=[_throttled(), (_reply(), 8.0)])
        chain = ModelFallbackChain(["model-a", "model-b", "model-c"], invoke=invoke)

        result = chain.converse([], job_name="job-1", temperature=0.1)

        self.assertEqual(result.model_id, "model-b")
        self.assertEqual([a.ok for a in result.attempts], [False, True])
        self.assertEqual(result.attempts[0].error_type, "ClientError")
        self.assertEqual(invoke.call_args.kwargs["temperature"], 0.1)

    def test_all_models_fail(self):
        last = TimeoutError("read timed out")
        invoke = Mock(side_effect=[_throttled(), last])
        chain = ModelFallbackChain(["model-a", "model-b"], invoke=invoke)

        with self.assertRaises(AllModelsFailedError) as ctx:
            chain.converse([], job_name="job-2")

        self.assertEqual([a.model_id for a in ctx.exception.attempts], ["model-a", "model-b"])
        self.assertIs(ctx.exception.last_error, last)
        self.assertEqual(ctx.exception.service, "bedrock")

    def test_uses_helper_bedrock_converse_by_default(self):
        with patch("utils.helper.bedrock_converse", return_value=(_reply(), 1.0)) as converse:
            result = ModelFallbackChain(["model-a"]).converse([])

        self.assertEqual(result.model_id, "model-a")
        converse.assert_called_once()

    def test_empty_chain_rejected(self):
        with self.assertRaises(ValueError):
            ModelFallbackChain([])


if __name__ == '__main__':
    unittest.main()

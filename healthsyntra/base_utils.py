# healthsyntra/base_utils.py

import logging
import re

import commentjson

from healthsyntra.errors import SchemaValidationError


logger = logging.getLogger("healthsyntra_backend")


class BaseUtils():

    def clean_triple_backticks(self, code) -> str:
        pattern = r'```[a-zA-Z]*\n?|```\n?'
        return re.sub(pattern, '', code)

    def unsafe_string_format(self, dest_string, **kwargs):
        """
        Formats a destination string by replacing placeholders with corresponding values from kwargs.

        it works differently from the standard "format" method as instead of looking for all the potential keys,
        looks only for the keys as passed in kwargs, so literal JSON braces in a prompt survive untouched.
        Substituted values are never re-scanned for placeholders.
        """
        # List to track keys that were not found
        missing_keys = []
        # Regex pattern to match placeholders like {key}
        def replacer(match):
            key = match.group(1)
            if key in kwargs:
                return str(kwargs[key])
            else:
                missing_keys.append(key)
                return match.group(0)  # Leave the placeholder unchanged

        pattern = re.compile(r'\{(\w+)\}')
        result = pattern.sub(replacer, dest_string)
        if missing_keys:
            logger.info(f"\033[93m\033[3mMissing keys within string-to-format in unsafe_string_format: {', '.join(missing_keys)}\033[0m")
        return result

    def load_strict_json(self, json_str) -> dict:
        """
        Parses a model reply that must be a single JSON object.
        Code fences are removed; anything else that is not valid JSON is rejected.
        """
        if not isinstance(json_str, str) or not json_str.strip():
            raise SchemaValidationError()
        try:
            data = commentjson.loads(self.clean_triple_backticks(json_str).strip())
        except Exception as e:
            logger.warning(f"load_strict_json: reply is not valid JSON: {e}")
            raise SchemaValidationError() from e
        if not isinstance(data, dict):
            logger.warning(f"load_strict_json: expected a JSON object, got {type(data).__name__}")
            raise SchemaValidationError()
        return data

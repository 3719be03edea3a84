# rulebuilder/base_utils.py

import json
import logging
import re

import commentjson
import yaml
from json_repair import repair_json


logger = logging.getLogger("rulebuilder")


class BaseUtils():

    def clean_triple_backticks(self, code) -> str:
        pattern = r'```[a-zA-Z]*\n?|```\n?'
        return re.sub(pattern, '', code)

    def unsafe_string_format(self, dest_string, print_unused_keys_report=True, **kwargs):
        """
        Formats a destination string by replacing placeholders with corresponding values from kwargs.

        it works differently from the standard "format" method as instead of looking for all the potential keys,
        looks only for the keys as passed in kwargs, so literal JSON braces in prompts survive untouched.
        """
        missing_keys = []

        def replacer(match):
            key = match.group(1)
            if key in kwargs:
                return str(kwargs[key])
            else:
                missing_keys.append(key)
                return match.group(0)  # Leave the placeholder unchanged

        pattern = re.compile(r'\{(\w+)\}')
        result = pattern.sub(replacer, dest_string)
        if missing_keys and print_unused_keys_report:
            logger.info(f"\033[93m\033[3mMissing keys within string-to-format in unsafe_string_format: {', '.join(missing_keys)}\033[0m")
        return result

    # -----------------------
    # Fault tolerant JSON
    # -----------------------

    def load_fault_tolerant_json(self, json_str):
        """
        Attempts to load a JSON-like string the way LLMs tend to produce it:
        fenced, commented, with stray quotes or trailing commas.

        Tries commentjson, then yaml over a sanitized copy, then json_repair.
        Returns the parsed dict/list; raises ValueError if nothing usable comes out.
        """
        def sanitize_json_string(input_str):
            def process_string_segment(match):
                content = match.group(1)

                # Step 1: Escape unescaped backslashes not part of escape sequences
                content = re.sub(r'(?<!\\)\\(?![bfnrtu"\\/])', r'\\\\', content)

                # Step 2: Replace literal newlines within the string content
                content = re.sub(r'(?<!\\)\n', r'\\n', content)

                return f'"{content}"'

            def remove_comments(input_str):
                return re.sub(r'^\s*//.*?$|/\*.*?\*/', '', input_str, flags=re.MULTILINE | re.DOTALL)

            input_str = self.clean_triple_backticks(input_str)
            input_str = remove_comments(input_str)
            return re.sub(r'(?<!\\)"((?:[^"\\]|\\.)*?)"', process_string_segment, input_str, flags=re.DOTALL)

        def load_json(json_str):
            err, data = "", None
            try:
                data = commentjson.loads(self.clean_triple_backticks(json_str))
                if not isinstance(data, (dict, list)):
                    raise ValueError("load_fault_tolerant_json: JSON is not an object or array.")
                return data, ""
            except Exception as e:
                err = str(e)
            try:
                data = yaml.safe_load(sanitize_json_string(json_str))
                if not isinstance(data, (dict, list)):
                    raise ValueError("load_fault_tolerant_json: YAML parsing did not yield a structure.")
                return data, ""
            except Exception as e:
                err += "\n--\n" + str(e)
            return None, err

        if not json_str or not json_str.strip():
            raise ValueError("load_fault_tolerant_json: empty input")

        data, err = load_json(json_str)
        if data:
            return data
        try:
            repaired_json_str = repair_json(self.clean_triple_backticks(json_str))
        except Exception as e:
            raise ValueError(f"load_fault_tolerant_json: json_repair failed: {e}") from e
        if not isinstance(repaired_json_str, str):
            repaired_json_str = json.dumps(repaired_json_str)
        r_data, r_err = load_json(repaired_json_str)
        if r_data:
            return r_data
        raise ValueError(f"load_fault_tolerant_json: JSON parsing failed: {err or r_err}")

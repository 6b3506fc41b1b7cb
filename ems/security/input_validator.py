# ems/security/input_validator.py

import re
import bleach

# Input validation and sanitization for admin-entered text (candidate
# details, voter roll rows).


class InputValidator:
    def __init__(self):
        self.allowed_html_tags = []
        self.allowed_html_attributes = {}

        self.patterns = {
            'voter_index': re.compile(r'^[A-Za-z0-9/_-]{3,32}$'),
            'user_name': re.compile(r'^[A-Za-z0-9._-]{3,80}$'),
            'xss_script': re.compile(r'<script[^>]*>.*?</script>', re.IGNORECASE | re.DOTALL),
            'xss_event': re.compile(r'\bon\w+\s*=', re.IGNORECASE),
        }

    def sanitize_string(self, input_str, max_length=255):
        if not isinstance(input_str, str):
            raise ValueError("Input must be a string")
        if len(input_str) > max_length:
            input_str = input_str[:max_length]

        sanitized = re.sub(self.patterns['xss_script'], '', input_str)
        sanitized = re.sub(self.patterns['xss_event'], '', sanitized)
        sanitized = bleach.clean(sanitized, tags=self.allowed_html_tags, attributes=self.allowed_html_attributes, strip=True)
        return sanitized.strip()

    def validate_voter_index(self, index):
        return isinstance(index, str) and bool(self.patterns['voter_index'].match(index))

    def validate_user_name(self, user_name):
        return isinstance(user_name, str) and bool(self.patterns['user_name'].match(user_name))

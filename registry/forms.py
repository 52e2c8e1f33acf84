import re

from django import forms
from django.core.validators import RegexValidator

# Dotted quad, ASCII octets 0-255, no leading zeros.
_OCTET = r"(25[0-5]|2[0-4][0-9]|1[0-9][0-9]|[1-9]?[0-9])"
IPV4_RE = re.compile(rf"\A{_OCTET}(\.{_OCTET}){{3}}\Z")

_ipv4_validator = RegexValidator(
    regex=IPV4_RE,
    message="Please enter a valid IPv4 address (e.g., 192.168.1.1)",
)

_user_name_validator = RegexValidator(
    regex=r"^[A-Za-z0-9 ._-]{2,50}$",
    message="Invalid name. Use 2-50 characters: letters, digits, spaces or ._-",
)


def is_valid_ipv4(value: str) -> bool:
    return bool(IPV4_RE.match((value or "").strip()))


class IpAddressField(forms.CharField):

    def __init__(self, **kwargs):
        kwargs.setdefault("validators", [_ipv4_validator])
        super().__init__(**kwargs)


class IpCheckForm(forms.Form):
    address = IpAddressField(
        label="Enter IP Address",
        widget=forms.TextInput(attrs={"class": "input input-lg", "placeholder": "e.g. 192.168.1.100", "autocomplete": "off"}),
    )
    user_id = forms.ChoiceField(
        choices=[],
        label="Checked by",
        error_messages={
            "required": "Please select who is checking this address.",
            "invalid_choice": "Please select who is checking this address.",
        },
        widget=forms.Select(attrs={"class": "select"}),
    )

    def __init__(self, *args, users=None, **kwargs):
        super().__init__(*args, **kwargs)
        users = users or []
        self.users_by_id = {str(u["id"]): u for u in users if u.get("id") is not None}
        choices = [("", "-- Select your name --")]
        for u in users:
            if u.get("id") is None:
                continue
            choices.append((str(u["id"]), u.get("name") or f"#{u['id']}"))
        self.fields["user_id"].choices = choices

    def selected_user(self) -> dict:
        return self.users_by_id[self.cleaned_data["user_id"]]


class AdminLoginForm(forms.Form):
    username = forms.CharField(
        max_length=50,
        label="Username",
        widget=forms.TextInput(attrs={"class": "input", "autocomplete": "username"}),
    )
    password = forms.CharField(
        label="Password",
        strip=False,
        widget=forms.PasswordInput(attrs={"class": "input", "autocomplete": "current-password"}),
    )


class AddIpForm(forms.Form):
    address = IpAddressField(
        label="IP Address",
        error_messages={"invalid": "Invalid IP format"},
        widget=forms.TextInput(attrs={"class": "input", "placeholder": "0.0.0.0"}),
    )


class BulkImportForm(forms.Form):
    ip_file = forms.FileField(
        label="IP list (.txt)",
        widget=forms.ClearableFileInput(attrs={"accept": ".txt"}),
    )

    max_size = 1024 * 1024

    def clean_ip_file(self):
        f = self.cleaned_data["ip_file"]
        if not f.name.lower().endswith(".txt"):
            raise forms.ValidationError("Please upload a .txt file with one IP address per line.")
        if f.size > self.max_size:
            raise forms.ValidationError("File is too large (1 MB max).")

        try:
            text = f.read().decode("utf-8-sig")
        except UnicodeDecodeError:
            raise forms.ValidationError("File must be UTF-8 text.")

        lines = [line.strip() for line in text.splitlines() if line.strip()]
        if not lines:
            raise forms.ValidationError("File appears to be empty.")

        self.lines = lines
        return f


class AppUserForm(forms.Form):
    name = forms.CharField(
        max_length=50,
        label="Name",
        validators=[_user_name_validator],
        widget=forms.TextInput(attrs={"class": "input", "placeholder": "Jane Doe"}),
    )

    def clean_name(self):
        return " ".join(self.cleaned_data["name"].split())

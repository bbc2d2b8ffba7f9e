import re

from django import forms
from django.utils import timezone

from .models import OrganizationSettings, Transaction
from . import uploads

PH_PREFIX = '+63'


class LoginForm(forms.Form):
    email = forms.EmailField(widget=forms.EmailInput(attrs={'placeholder': 'admin@farmaid.gov', 'autofocus': True}))
    password = forms.CharField(widget=forms.PasswordInput)


class OrganizationRegistrationForm(forms.Form):
    contact_person = forms.CharField(max_length=120)
    organization_name = forms.CharField(max_length=200)
    contact_number = forms.CharField(max_length=20, initial=PH_PREFIX,
                                     widget=forms.TextInput(attrs={'inputmode': 'tel', 'placeholder': '+63 ...'}))
    email = forms.EmailField()
    year_founded = forms.IntegerField()
    certification = forms.FileField(help_text="PDF, JPG or PNG, max 5MB")

    def clean_contact_person(self):
        value = self.cleaned_data['contact_person'].strip()
        if not value:
            raise forms.ValidationError("Contact person is required.")
        return value

    def clean_organization_name(self):
        value = self.cleaned_data['organization_name'].strip()
        if not value:
            raise forms.ValidationError("Organization name is required.")
        return value

    def clean_contact_number(self):
        value = self.cleaned_data['contact_number'].strip().replace(' ', '')
        if not value.startswith(PH_PREFIX):
            raise forms.ValidationError("Contact number must start with +63.")
        digits = re.sub(r'\D', '', value)
        if len(digits) != 11 or not value[1:].isdigit():
            raise forms.ValidationError("Contact number must be exactly 11 digits including +63.")
        return value

    def clean_year_founded(self):
        year = self.cleaned_data['year_founded']
        current = timezone.localdate().year
        if year < 1900 or year > current:
            raise forms.ValidationError(f"Year must be between 1900 and {current}.")
        return year

    def clean_certification(self):
        return uploads.validate_certification(self.cleaned_data['certification'])


class SettingsForm(forms.ModelForm):
    class Meta:
        model = OrganizationSettings
        fields = ['display_name', 'email', 'email_notifications', 'sms_notifications', 'app_notifications']


class ImageUploadMixin:
    def clean_image(self):
        image = self.cleaned_data.get('image')
        if image:
            uploads.validate_image(image)
        return image


class DonationConfirmationForm(ImageUploadMixin, forms.Form):
    note = forms.CharField(widget=forms.Textarea(attrs={'rows': 4, 'placeholder': 'Thank you for the donation. We have received...'}))
    image = forms.FileField(required=False, help_text="Optional receipt image (JPEG or PNG, max 5MB)")


class ReceiptNoticeForm(ImageUploadMixin, forms.Form):
    message = forms.CharField(widget=forms.Textarea(attrs={'rows': 4}))
    image = forms.FileField(required=False)


class StatusForm(forms.Form):
    status = forms.ChoiceField(choices=Transaction.STATUS_CHOICES)

from django import forms

from dashboard.forms import ImageUploadMixin


class MessageForm(ImageUploadMixin, forms.Form):
    text = forms.CharField(required=False, widget=forms.TextInput(attrs={'placeholder': 'Type your message...', 'autocomplete': 'off'}))
    image = forms.FileField(required=False, help_text="JPEG or PNG, max 5MB")

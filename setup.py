from setuptools import setup, find_packages

setup(
    name="templatestore",
    version="0.1.0",
    packages=find_packages(include=["storefront", "storefront.*", "templatestore", "templatestore.*"]),
    include_package_data=True,
    package_data={"storefront": ["templates/storefront/*.html"]},
    install_requires=[
        "Django>=5.1",
        "djangorestframework>=3.15",
        "django-cors-headers>=4.3",
        "whitenoise>=6.6",
        "django-anymail[mailgun]>=10.0",
        "python-dotenv>=1.0",
        "stripe>=8.0",
        "requests>=2.31",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-django>=4.8",
        ],
    },
    author="Wayne",
    author_email="support@techwithwayne.com",
    description="Django storefront for printable PDF templates with Stripe Checkout and signed-webhook reconciliation.",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    url="https://techwithwayne.com",
    license="MIT",
    classifiers=[
        "Framework :: Django",
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
        "License :: OSI Approved :: MIT License"
    ],
    python_requires='>=3.10',
)

"""CoinCraze identity service: signup, login and OTP password reset."""
